"""Shared fixtures for docker-exec tests."""

from __future__ import annotations

import itertools
import threading
import time
from collections.abc import Mapping, Sequence

import pytest

from docker_exec.core.schemas import ExecConfig
from docker_exec.runtime.base import (
    ContainerHandle,
    ContainerNotFound,
    RuntimeClient,
    WaitAbandoned,
)

# Exit code the fake reports for a container killed by stop()
KILLED_EXIT_CODE = 137


class FakeRuntimeClient(RuntimeClient):
    """In-memory RuntimeClient that records every call.

    Containers "run" for ``run_seconds`` (or until stopped when
    ``block_until_stopped`` is set) and then exit with ``exit_code``.
    ``failures`` maps an operation name to the exception it should raise.
    """

    def __init__(
        self,
        exit_code: int = 0,
        stdout: str = "",
        stderr: str = "",
        run_seconds: float = 0.0,
        block_until_stopped: bool = False,
        failures: dict[str, BaseException] | None = None,
    ) -> None:
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.run_seconds = run_seconds
        self.block_until_stopped = block_until_stopped
        self.failures = failures or {}
        self.calls: list[tuple[str, str | None]] = []
        self.created: list[ContainerHandle] = []
        self.live: dict[str, threading.Event] = {}
        self.last_create_kwargs: dict[str, object] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _record(self, op: str, handle: ContainerHandle | None = None) -> None:
        with self._lock:
            self.calls.append((op, handle.id if handle else None))
        failure = self.failures.get(op)
        if failure is not None:
            raise failure

    def count(self, op: str) -> int:
        with self._lock:
            return sum(1 for name, _ in self.calls if name == op)

    def create(
        self,
        image: str,
        command: Sequence[str],
        *,
        environment: Mapping[str, str] | None = None,
        name: str | None = None,
    ) -> ContainerHandle:
        self._record("create")
        with self._lock:
            handle = ContainerHandle(id=f"{next(self._ids):064x}")
            self.created.append(handle)
            self.live[handle.id] = threading.Event()
            self.last_create_kwargs = {
                "image": image,
                "command": list(command),
                "environment": dict(environment or {}),
                "name": name,
            }
        return handle

    def start(self, handle: ContainerHandle) -> None:
        self._record("start", handle)

    def wait_for_exit(
        self, handle: ContainerHandle, abandon: threading.Event | None = None
    ) -> int:
        self._record("wait_for_exit", handle)
        stopped = self.live[handle.id]
        deadline = None if self.block_until_stopped else time.monotonic() + self.run_seconds
        while True:
            if stopped.is_set():
                return KILLED_EXIT_CODE
            if abandon is not None and abandon.is_set():
                raise WaitAbandoned(f"Stopped waiting for container {handle.short_id}")
            if deadline is not None and time.monotonic() >= deadline:
                return self.exit_code
            stopped.wait(timeout=0.01)

    def stop(self, handle: ContainerHandle, grace_period: float) -> None:
        self._record("stop", handle)
        event = self.live.get(handle.id)
        if event is not None:
            event.set()

    def fetch_logs(self, handle: ContainerHandle) -> tuple[str, str]:
        self._record("fetch_logs", handle)
        return self.stdout, self.stderr

    def remove(self, handle: ContainerHandle) -> None:
        self._record("remove", handle)
        with self._lock:
            event = self.live.pop(handle.id, None)
        if event is None:
            raise ContainerNotFound(f"No such container: {handle.id}")
        event.set()


@pytest.fixture
def fake_client() -> FakeRuntimeClient:
    return FakeRuntimeClient(stdout="hi\n")


@pytest.fixture
def make_client():
    """Factory for FakeRuntimeClient with custom behaviour."""
    return FakeRuntimeClient


@pytest.fixture
def fast_config() -> ExecConfig:
    """Config with short grace periods so timeout tests stay quick."""
    return ExecConfig(stop_grace_seconds=0, join_grace_seconds=0.5)
