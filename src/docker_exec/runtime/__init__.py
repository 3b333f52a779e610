"""Runtime module - daemon client interface and Docker implementation."""

from __future__ import annotations

from docker_exec.runtime.base import (
    ContainerHandle,
    ContainerNotFound,
    RuntimeClient,
    RuntimeClientError,
    WaitAbandoned,
)
from docker_exec.runtime.docker_client import DockerRuntimeClient

__all__ = [
    "ContainerHandle",
    "ContainerNotFound",
    "DockerRuntimeClient",
    "RuntimeClient",
    "RuntimeClientError",
    "WaitAbandoned",
]
