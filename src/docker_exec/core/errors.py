"""Error taxonomy for container runs.

Errors raised before a container exists propagate immediately. Errors raised
after a container exists are raised only once removal has been attempted, with
any removal failure attached as ``cleanup_error``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from docker_exec.core.schemas import RunOutcome


class RunError(Exception):
    """Base class for every error raised by :meth:`ContainerRunner.execute`."""

    def __init__(self, message: str, *, cleanup_error: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cleanup_error = cleanup_error

    def __str__(self) -> str:
        if self.cleanup_error:
            return f"{self.message} (cleanup failed: {self.cleanup_error})"
        return self.message


class InvalidRequest(RunError):
    """The request is malformed; the daemon was never contacted."""


class CreationFailed(RunError):
    """The daemon rejected the create call. No container exists."""

    def __init__(self, daemon_message: str) -> None:
        super().__init__(f"Container creation failed: {daemon_message}")
        self.daemon_message = daemon_message


class StartFailed(RunError):
    """The daemon rejected the start call. The created container was removed."""

    def __init__(
        self,
        daemon_message: str,
        *,
        container_id: str | None = None,
        cleanup_error: str | None = None,
    ) -> None:
        super().__init__(f"Container start failed: {daemon_message}", cleanup_error=cleanup_error)
        self.daemon_message = daemon_message
        self.container_id = container_id


class ContainerRuntimeError(RunError):
    """Unexpected failure after the container was started."""


class CleanupFailed(RunError):
    """Removing the container failed."""


class CommandFailed(RunError):
    """Raised by :meth:`RunOutcome.raise_for_status` for failed outcomes."""

    def __init__(self, outcome: RunOutcome) -> None:
        if outcome.error_message:
            detail = outcome.error_message
        else:
            detail = f"Command failed with status code: {outcome.exit_code}"
        if outcome.stderr:
            detail = f"{detail}\n{outcome.stderr}"
        super().__init__(detail, cleanup_error=outcome.cleanup_error)
        self.outcome = outcome
