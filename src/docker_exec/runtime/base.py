"""Base runtime client abstract class.

The runner talks to the container daemon only through this interface, so the
daemon connection is always injected by the caller and can be replaced with a
fake in tests.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass


class RuntimeClientError(Exception):
    """The daemon rejected or failed a lifecycle call."""

    def __init__(self, daemon_message: str) -> None:
        super().__init__(daemon_message)
        self.daemon_message = daemon_message


class ContainerNotFound(RuntimeClientError):
    """The container no longer exists on the daemon."""


class WaitAbandoned(RuntimeClientError):
    """The caller stopped waiting before the container exited."""


@dataclass(frozen=True)
class ContainerHandle:
    """Opaque reference to a container created for one run."""

    id: str

    @property
    def short_id(self) -> str:
        return self.id[:12]


class RuntimeClient(ABC):
    """Abstract interface over the daemon lifecycle primitives.

    Implementations:
    - DockerRuntimeClient: Docker SDK (docker-py)
    """

    @abstractmethod
    def create(
        self,
        image: str,
        command: Sequence[str],
        *,
        environment: Mapping[str, str] | None = None,
        name: str | None = None,
    ) -> ContainerHandle:
        """Create (but do not start) a container.

        Raises:
            RuntimeClientError: If the daemon rejects the request
        """

    @abstractmethod
    def start(self, handle: ContainerHandle) -> None:
        """Start a created container.

        Raises:
            RuntimeClientError: If the daemon rejects the request
        """

    @abstractmethod
    def wait_for_exit(
        self, handle: ContainerHandle, abandon: threading.Event | None = None
    ) -> int:
        """Block until the container's process exits and return its exit code.

        Raises:
            WaitAbandoned: If ``abandon`` is set before the exit is observed
            RuntimeClientError: If the daemon fails the wait
        """

    @abstractmethod
    def stop(self, handle: ContainerHandle, grace_period: float) -> None:
        """Ask the daemon to stop the container, killing it after ``grace_period`` seconds."""

    @abstractmethod
    def fetch_logs(self, handle: ContainerHandle) -> tuple[str, str]:
        """Return ``(stdout, stderr)`` produced by the container so far."""

    @abstractmethod
    def remove(self, handle: ContainerHandle) -> None:
        """Remove the container.

        Raises:
            ContainerNotFound: If the container is already gone
            RuntimeClientError: If the daemon fails the removal
        """
