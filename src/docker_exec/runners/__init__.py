"""Runners module - container lifecycle management."""

from __future__ import annotations

from docker_exec.runners.cancellation import CancelToken
from docker_exec.runners.container_runner import ContainerRunner, RunnerSession

__all__ = ["CancelToken", "ContainerRunner", "RunnerSession"]
