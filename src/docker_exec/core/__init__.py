"""Core module - configuration, schemas and errors."""

from __future__ import annotations

from docker_exec.core.config import load_config
from docker_exec.core.constants import (
    CANCELLED_EXIT_CODE,
    DEFAULT_STOP_GRACE_SECONDS,
    TIMEOUT_EXIT_CODE,
)
from docker_exec.core.errors import (
    CleanupFailed,
    CommandFailed,
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
)

__all__ = [
    "CANCELLED_EXIT_CODE",
    "CleanupFailed",
    "CommandFailed",
    "ContainerRuntimeError",
    "CreationFailed",
    "DEFAULT_STOP_GRACE_SECONDS",
    "ExecConfig",
    "InvalidRequest",
    "load_config",
    "OutcomeReason",
    "OutcomeStatus",
    "RunError",
    "RunOutcome",
    "RunRequest",
    "RunState",
    "StartFailed",
    "TIMEOUT_EXIT_CODE",
]
