"""docker-exec - run one-shot commands in throwaway Docker containers."""

from __future__ import annotations

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
from docker_exec.runners import CancelToken, ContainerRunner
from docker_exec.runtime import ContainerHandle, DockerRuntimeClient, RuntimeClient

__version__ = "0.1.0"

__all__ = [
    "CancelToken",
    "CleanupFailed",
    "CommandFailed",
    "ContainerHandle",
    "ContainerRunner",
    "ContainerRuntimeError",
    "CreationFailed",
    "DockerRuntimeClient",
    "ExecConfig",
    "InvalidRequest",
    "OutcomeReason",
    "OutcomeStatus",
    "RunError",
    "RunOutcome",
    "RunRequest",
    "RunState",
    "RuntimeClient",
    "StartFailed",
    "__version__",
]
