"""Container runner for one-shot commands.

This module drives a single container through its lifecycle:
- Creation from an image with the requested command
- Start
- Waiting for exit, raced against an optional timeout and cancellation
- Log collection (also on timeout, partial output is kept)
- Removal, attempted exactly once on every exit path

The daemon connection is injected as a RuntimeClient; the runner never opens
one itself.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping, Sequence
from datetime import timedelta
from typing import TYPE_CHECKING

from pydantic import ValidationError

from docker_exec.core.constants import CANCELLED_EXIT_CODE, TIMEOUT_EXIT_CODE, UNKNOWN_EXIT_CODE
from docker_exec.core.errors import (
    ContainerRuntimeError,
    CreationFailed,
    InvalidRequest,
    RunError,
    StartFailed,
)
from docker_exec.core.schemas import (
    ExecConfig,
    OutcomeReason,
    OutcomeStatus,
    RunOutcome,
    RunRequest,
    RunState,
    request_problem,
)
from docker_exec.runtime.base import (
    ContainerHandle,
    ContainerNotFound,
    RuntimeClient,
    RuntimeClientError,
)
from docker_exec.runtime.docker_client import DockerRuntimeClient

if TYPE_CHECKING:
    import docker

    from docker_exec.runners.cancellation import CancelToken

logger = logging.getLogger(__name__)

# Terminal branches of the wait race, all of which must still be cleaned
_AWAITED_STATES = {
    RunState.COMPLETED,
    RunState.TIMED_OUT,
    RunState.CANCELLED,
    RunState.WAIT_FAILED,
}

_TRANSITIONS: dict[RunState, set[RunState]] = {
    RunState.IDLE: {RunState.CREATED, RunState.CREATION_FAILED},
    RunState.CREATED: {RunState.RUNNING, RunState.START_FAILED, RunState.CLEANED},
    RunState.RUNNING: _AWAITED_STATES | {RunState.CLEANED},
    RunState.COMPLETED: {RunState.CLEANED},
    RunState.TIMED_OUT: {RunState.CLEANED},
    RunState.CANCELLED: {RunState.CLEANED},
    RunState.WAIT_FAILED: {RunState.CLEANED},
    RunState.START_FAILED: {RunState.CLEANED},
    RunState.CREATION_FAILED: set(),
    RunState.CLEANED: set(),
}


class RunnerSession:
    """State machine for one container run.

    A session is created per ``execute`` call and discarded afterwards. It owns
    the ContainerHandle exclusively and guarantees a single removal attempt.
    """

    def __init__(
        self,
        client: RuntimeClient,
        request: RunRequest,
        config: ExecConfig,
        cancel_token: CancelToken | None = None,
    ) -> None:
        self.request = request
        self.state = RunState.IDLE
        self.history: list[RunState] = [RunState.IDLE]
        self.handle: ContainerHandle | None = None
        self.cleanup_error: str | None = None
        self.terminal_state: RunState | None = None

        self._client = client
        self._config = config
        self._cancel_token = cancel_token
        self._started_at = time.monotonic()
        self._removal_attempted = False

        # Race signalling: _wake is set by whichever of exit/cancel happens first
        self._wake = threading.Event()
        self._exited = threading.Event()
        self._exit_code: int | None = None
        self._wait_error: Exception | None = None
        # Set once the race resolves; tells the waiter to give up polling
        self._abandon_wait = threading.Event()

    @property
    def _label(self) -> str:
        return self.handle.short_id if self.handle else self.request.image

    def _transition(self, new_state: RunState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise ContainerRuntimeError(
                f"Invalid state transition {self.state.value} -> {new_state.value}"
            )
        logger.debug(f"[{self._label}] {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)
        if new_state in _AWAITED_STATES:
            self.terminal_state = new_state

    # --------------------------------------------------------------------- #
    # Lifecycle steps
    # --------------------------------------------------------------------- #
    def create(self) -> ContainerHandle:
        logger.info(f"Creating container from {self.request.image}: {list(self.request.command)}")
        try:
            handle = self._client.create(
                self.request.image,
                self.request.command,
                environment=self.request.environment,
                name=self.request.name,
            )
        except RuntimeClientError as e:
            self._transition(RunState.CREATION_FAILED)
            logger.error(f"Container creation failed: {e.daemon_message}")
            raise CreationFailed(e.daemon_message) from e

        self.handle = handle
        self._transition(RunState.CREATED)
        return handle

    def start(self) -> None:
        assert self.handle is not None
        logger.info(f"Starting container {self.handle.short_id}")
        try:
            self._client.start(self.handle)
        except RuntimeClientError as e:
            self._transition(RunState.START_FAILED)
            logger.error(f"Container {self.handle.short_id} failed to start: {e.daemon_message}")
            raise StartFailed(e.daemon_message, container_id=self.handle.id) from e
        self._transition(RunState.RUNNING)

    def _wait_worker(self) -> None:
        assert self.handle is not None
        try:
            self._exit_code = self._client.wait_for_exit(self.handle, self._abandon_wait)
        except Exception as e:
            self._wait_error = e
        finally:
            self._exited.set()
            self._wake.set()

    def await_exit(self) -> tuple[int, OutcomeReason | None, str | None]:
        """Race process exit against the timeout and cancellation.

        Returns:
            Tuple of (exit_code, failure reason or None, error message or None)
        """
        assert self.handle is not None
        waiter = threading.Thread(
            target=self._wait_worker, name=f"wait-{self.handle.short_id}", daemon=True
        )
        waiter.start()

        wake = self._wake.set
        if self._cancel_token is not None:
            self._cancel_token.add_callback(wake)
        try:
            self._wake.wait(timeout=self.request.timeout)
        finally:
            if self._cancel_token is not None:
                self._cancel_token.remove_callback(wake)

        # An exit that landed together with the timeout still counts as an exit
        exited = self._exited.is_set()
        self._abandon_wait.set()
        if exited:
            if self._wait_error is not None:
                self._transition(RunState.WAIT_FAILED)
                logger.error(
                    f"Waiting for container {self.handle.short_id} failed: {self._wait_error}"
                )
                self._stop_best_effort()
                return (
                    UNKNOWN_EXIT_CODE,
                    OutcomeReason.RUNTIME_ERROR,
                    f"Waiting for container failed: {self._wait_error}",
                )
            self._transition(RunState.COMPLETED)
            exit_code = self._exit_code if self._exit_code is not None else UNKNOWN_EXIT_CODE
            logger.debug(f"Container {self.handle.short_id} exited with code {exit_code}")
            return exit_code, None, None

        if self._cancel_token is not None and self._cancel_token.cancelled:
            self._transition(RunState.CANCELLED)
            logger.info(f"Run in container {self.handle.short_id} cancelled, stopping")
            self._stop_best_effort()
            self._join_waiter(waiter)
            return CANCELLED_EXIT_CODE, OutcomeReason.CANCELLED, "Execution cancelled"

        self._transition(RunState.TIMED_OUT)
        logger.info(
            f"Container {self.handle.short_id} timed out after {self.request.timeout}s, stopping"
        )
        self._stop_best_effort()
        self._join_waiter(waiter)
        return (
            TIMEOUT_EXIT_CODE,
            OutcomeReason.TIMED_OUT,
            f"Execution timed out after {self.request.timeout}s",
        )

    def _stop_best_effort(self) -> None:
        assert self.handle is not None
        try:
            self._client.stop(self.handle, self._config.stop_grace_seconds)
        except Exception as e:
            logger.warning(f"Failed to stop container {self.handle.short_id}: {e}")

    def _join_waiter(self, waiter: threading.Thread) -> None:
        waiter.join(timeout=self._config.join_grace_seconds)
        if waiter.is_alive():
            # Abandoned; the thread ends at its next poll and its result is discarded
            logger.warning(f"Exit waiter for {self._label} still blocked after stop")

    def collect_logs(self) -> tuple[str, str, str | None]:
        """Fetch stdout/stderr, returning empty output and the error on failure."""
        assert self.handle is not None
        try:
            stdout, stderr = self._client.fetch_logs(self.handle)
        except Exception as e:
            logger.warning(f"Failed to fetch logs for container {self.handle.short_id}: {e}")
            return "", "", str(e) or e.__class__.__name__
        return stdout, stderr, None

    def cleanup(self) -> None:
        """Remove the container. Runs at most once per session."""
        if self.handle is None or self._removal_attempted:
            return
        self._removal_attempted = True
        try:
            self._client.remove(self.handle)
            logger.debug(f"Removed container {self.handle.short_id}")
        except ContainerNotFound:
            logger.debug(f"Container {self.handle.short_id} already removed")
        except Exception as e:
            self.cleanup_error = str(e) or e.__class__.__name__
            logger.error(f"Failed to remove container {self.handle.short_id}: {e}")
        finally:
            self._abandon_wait.set()
            self._transition(RunState.CLEANED)

    # --------------------------------------------------------------------- #
    # Driver
    # --------------------------------------------------------------------- #
    def classify(
        self,
        exit_code: int,
        reason: OutcomeReason | None,
        error_message: str | None,
        stdout: str,
        stderr: str,
        log_error: str | None,
    ) -> RunOutcome:
        if reason is None and exit_code != 0:
            reason = OutcomeReason.NON_ZERO_EXIT
            error_message = f"Command failed with status code: {exit_code}"

        if log_error is not None:
            log_message = f"Failed to fetch logs: {log_error}"
            if reason is None:
                reason = OutcomeReason.RUNTIME_ERROR
                error_message = log_message
            else:
                error_message = f"{error_message}; {log_message}"

        # A non-zero exit code can never classify as success
        status = OutcomeStatus.SUCCESS if reason is None else OutcomeStatus.FAILURE
        if status is OutcomeStatus.FAILURE and exit_code == 0:
            exit_code = UNKNOWN_EXIT_CODE

        return RunOutcome(
            status=status,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            reason=reason,
            error_message=error_message,
            container_id=self.handle.id if self.handle else None,
            terminal_state=self.terminal_state,
        )

    def run(self) -> RunOutcome:
        """Drive the session to completion.

        Raises:
            CreationFailed: Create was rejected (nothing to remove)
            StartFailed: Start was rejected (container removed first)
            ContainerRuntimeError: Unexpected failure (container removed first)
        """
        self.create()
        try:
            self.start()
            exit_code, reason, error_message = self.await_exit()
            stdout, stderr, log_error = self.collect_logs()
            outcome = self.classify(exit_code, reason, error_message, stdout, stderr, log_error)
        except RunError as e:
            self.cleanup()
            if e.cleanup_error is None:
                e.cleanup_error = self.cleanup_error
            raise
        except Exception as e:
            self.cleanup()
            raise ContainerRuntimeError(
                f"Unexpected error during container run: {e}", cleanup_error=self.cleanup_error
            ) from e
        finally:
            # Covers KeyboardInterrupt and friends; no-op when already cleaned
            self.cleanup()

        if outcome.success:
            logger.info(f"Container {self._label} completed successfully")
        else:
            logger.info(
                f"Container {self._label} failed ({outcome.reason.value}): {outcome.error_message}"
            )

        return outcome.model_copy(
            update={
                "cleanup_error": self.cleanup_error,
                "duration_seconds": time.monotonic() - self._started_at,
                "final_state": self.state,
            }
        )


class ContainerRunner:
    """Runs one-shot commands in throwaway containers.

    The runner holds no per-run state, so a single instance can serve
    concurrent ``execute`` calls from multiple threads.

    Example:
        ```python
        runner = ContainerRunner.from_docker(docker.from_env())
        outcome = runner.run("alpine", ["echo", "hi"], timeout=5)
        assert outcome.stdout == "hi\\n"
        ```
    """

    def __init__(self, client: RuntimeClient, config: ExecConfig | None = None) -> None:
        """Initialize the runner.

        Args:
            client: Runtime client bound to a daemon connection owned by the caller
            config: Runner settings (grace periods, default timeout)
        """
        self._client = client
        self.config = config or ExecConfig()

    @classmethod
    def from_docker(
        cls, docker_client: docker.DockerClient, config: ExecConfig | None = None
    ) -> ContainerRunner:
        """Build a runner over an existing Docker SDK client."""
        config = config or ExecConfig()
        runtime = DockerRuntimeClient(
            docker_client,
            wait_poll_seconds=config.wait_poll_seconds,
            force_remove=config.force_remove,
        )
        return cls(runtime, config)

    def execute(self, request: RunRequest, cancel_token: CancelToken | None = None) -> RunOutcome:
        """Run ``request`` to completion and return its classified outcome.

        Timeouts, cancellation and non-zero exits are reported as failed
        outcomes, not exceptions.

        Raises:
            InvalidRequest: The request is malformed (daemon not contacted)
            CreationFailed: The daemon rejected container creation
            StartFailed: The daemon rejected container start
            ContainerRuntimeError: Unexpected failure after the container existed
        """
        if not isinstance(request, RunRequest):
            raise InvalidRequest(f"Expected RunRequest, got {type(request).__name__}")
        problem = request_problem(request)
        if problem is not None:
            raise InvalidRequest(problem)

        if request.timeout is None and self.config.default_timeout is not None:
            request = request.model_copy(update={"timeout": self.config.default_timeout})

        session = RunnerSession(self._client, request, self.config, cancel_token)
        return session.run()

    def run(
        self,
        image: str,
        command: Sequence[str],
        timeout: float | timedelta | None = None,
        *,
        environment: Mapping[str, str] | None = None,
        name: str | None = None,
        cancel_token: CancelToken | None = None,
    ) -> RunOutcome:
        """Build a RunRequest from arguments and execute it."""
        try:
            request = RunRequest(
                image=image,
                command=command,
                timeout=timeout,
                environment=dict(environment or {}),
                name=name,
            )
        except ValidationError as e:
            raise InvalidRequest(f"Invalid run request: {e}") from e
        return self.execute(request, cancel_token)
