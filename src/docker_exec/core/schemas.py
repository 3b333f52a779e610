"""Pydantic schemas for docker-exec.

This module defines the data contracts used throughout the package: the
request a caller submits, the outcome it receives, the lifecycle states a run
moves through, and the runner configuration.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta
from enum import Enum
from types import MappingProxyType

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from docker_exec.core.constants import (
    DEFAULT_DOCKER_TIMEOUT_SECONDS,
    DEFAULT_JOIN_GRACE_SECONDS,
    DEFAULT_STOP_GRACE_SECONDS,
    DEFAULT_WAIT_POLL_SECONDS,
)
from docker_exec.core.errors import CleanupFailed, CommandFailed


class RunState(str, Enum):
    """Lifecycle states of a single container run."""

    IDLE = "idle"  # No daemon resources held
    CREATED = "created"  # Container exists but is not started
    RUNNING = "running"  # Start acknowledged
    COMPLETED = "completed"  # Process exited before the timeout
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    WAIT_FAILED = "wait_failed"  # Exit status could not be observed
    CREATION_FAILED = "creation_failed"
    START_FAILED = "start_failed"
    CLEANED = "cleaned"  # Terminal: removal attempted


class OutcomeStatus(str, Enum):
    """Top-level classification of a finished run."""

    SUCCESS = "success"
    FAILURE = "failure"


class OutcomeReason(str, Enum):
    """Why a run is classified as a failure."""

    NON_ZERO_EXIT = "non_zero_exit"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    RUNTIME_ERROR = "runtime_error"


class RunRequest(BaseModel):
    """An immutable request to run one command in one container.

    Attributes:
        image: Image reference (e.g., 'alpine' or 'alpine:3.20')
        command: Executable followed by its arguments
        timeout: Maximum seconds to wait for the process, None = unbounded
        environment: Environment variables for the container (read-only)
        name: Optional container name
    """

    model_config = ConfigDict(frozen=True)

    image: str = Field(..., description="Image reference")
    command: tuple[str, ...] = Field(..., description="Executable and arguments")
    timeout: float | None = Field(default=None, description="Wait timeout in seconds")
    environment: Mapping[str, str] = Field(default_factory=dict, validate_default=True)
    name: str | None = Field(default=None)

    @field_validator("image")
    @classmethod
    def validate_image(cls, v: str) -> str:
        """Reject blank image references."""
        if not v or not v.strip():
            raise ValueError("image must be a non-empty string")
        return v.strip()

    @field_validator("command", mode="before")
    @classmethod
    def validate_command(cls, v: object) -> object:
        """Reject a bare string so it is not split into characters."""
        if isinstance(v, str):
            raise ValueError("command must be a sequence of strings, not a string")
        return v

    @field_validator("timeout", mode="before")
    @classmethod
    def normalize_timeout(cls, v: object) -> object:
        """Accept timedelta values and normalize them to seconds."""
        if isinstance(v, timedelta):
            return v.total_seconds()
        return v

    @field_validator("environment")
    @classmethod
    def freeze_environment(cls, v: Mapping[str, str]) -> Mapping[str, str]:
        """Copy into a read-only mapping so a frozen request stays immutable."""
        return MappingProxyType(dict(v))

    @field_serializer("environment")
    def serialize_environment(self, v: Mapping[str, str]) -> dict[str, str]:
        return dict(v)

    @model_validator(mode="after")
    def check_request(self) -> RunRequest:
        problem = request_problem(self)
        if problem is not None:
            raise ValueError(problem)
        return self


def request_problem(request: RunRequest) -> str | None:
    """Return a description of what is wrong with ``request``, or None if valid.

    Runs on constructed models too, so requests built with ``model_construct``
    are still checked before the daemon is contacted.
    """
    if not isinstance(request.image, str) or not request.image.strip():
        return "image must be a non-empty string"
    if not request.command:
        return "command must contain at least the executable"
    if not all(isinstance(part, str) for part in request.command):
        return "command elements must be strings"
    if not request.command[0].strip():
        return "command executable must be non-empty"
    if request.timeout is not None and request.timeout <= 0:
        return "timeout must be positive when given"
    return None


class RunOutcome(BaseModel):
    """Classified result of a finished run.

    Produced once per session after logs are collected. ``cleanup_error`` is a
    secondary diagnostic and never changes ``status`` or ``reason``.
    """

    status: OutcomeStatus
    stdout: str = ""
    stderr: str = ""
    exit_code: int
    reason: OutcomeReason | None = None
    error_message: str | None = None
    cleanup_error: str | None = None
    container_id: str | None = None
    duration_seconds: float = 0.0
    # Branch that ended the wait (completed, timed_out, cancelled, wait_failed)
    terminal_state: RunState | None = None
    final_state: RunState = RunState.CLEANED

    @model_validator(mode="after")
    def check_classification(self) -> RunOutcome:
        """Success means exit code 0 and no reason; failure always carries a reason."""
        if self.status == OutcomeStatus.SUCCESS:
            if self.exit_code != 0 or self.reason is not None:
                raise ValueError("successful outcome requires exit_code 0 and no reason")
        elif self.reason is None:
            raise ValueError("failed outcome requires a reason")
        return self

    @property
    def success(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    @property
    def timed_out(self) -> bool:
        return self.reason == OutcomeReason.TIMED_OUT

    @property
    def output(self) -> str:
        """Stdout with surrounding whitespace removed."""
        return self.stdout.strip()

    def raise_for_status(self) -> RunOutcome:
        """Raise :class:`CommandFailed` if the run failed, else return self."""
        if not self.success:
            raise CommandFailed(self)
        return self

    def raise_for_cleanup(self) -> RunOutcome:
        """Raise :class:`CleanupFailed` if the container could not be removed."""
        if self.cleanup_error:
            raise CleanupFailed(
                f"Failed to remove container {self.container_id}: {self.cleanup_error}"
            )
        return self


class ExecConfig(BaseModel):
    """Runner configuration, loadable from YAML/JSON via ``load_config``."""

    stop_grace_seconds: float = Field(
        default=DEFAULT_STOP_GRACE_SECONDS, ge=0, description="Stop grace period on timeout"
    )
    join_grace_seconds: float = Field(
        default=DEFAULT_JOIN_GRACE_SECONDS, ge=0, description="Wait for waiter thread after stop"
    )
    wait_poll_seconds: float = Field(
        default=DEFAULT_WAIT_POLL_SECONDS, gt=0, description="Read timeout of one wait call"
    )
    force_remove: bool = Field(default=True, description="Remove with force=True")
    docker_base_url: str | None = Field(
        default=None, description="Daemon URL, e.g. unix:///var/run/docker.sock"
    )
    docker_timeout: int = Field(default=DEFAULT_DOCKER_TIMEOUT_SECONDS, ge=1)
    default_timeout: float | None = Field(
        default=None, gt=0, description="Timeout applied when a request has none"
    )
    log_level: str = Field(default="INFO")

    model_config = {"extra": "forbid"}

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level
