"""DockerRuntimeClient - RuntimeClient implementation using the Docker SDK.

Wraps an already-connected ``docker.DockerClient``; it never opens a
connection of its own. Container models are rebuilt from the handle id on each
call, so one client can serve many concurrent runs without shared state.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

import requests
from docker.errors import APIError, DockerException, ImageNotFound, NotFound

from docker_exec.core.constants import DEFAULT_WAIT_POLL_SECONDS, UNKNOWN_EXIT_CODE
from docker_exec.runtime.base import (
    ContainerHandle,
    ContainerNotFound,
    RuntimeClient,
    RuntimeClientError,
    WaitAbandoned,
)

if TYPE_CHECKING:
    import threading

    import docker
    from docker.models.containers import Container

logger = logging.getLogger(__name__)


def _daemon_message(error: Exception) -> str:
    """Extract the daemon's explanation from a Docker SDK error."""
    if isinstance(error, APIError) and error.explanation:
        explanation = error.explanation
        if isinstance(explanation, bytes):
            explanation = explanation.decode("utf-8", errors="replace")
        return str(explanation)
    return str(error)


def _is_read_timeout(error: Exception) -> bool:
    """True if the HTTP read timed out while the daemon was still waiting.

    Over a unix socket the SDK reports read timeouts as ConnectionError.
    """
    if isinstance(error, requests.exceptions.ReadTimeout):
        return True
    return isinstance(error, requests.exceptions.ConnectionError) and "timed out" in str(error)


class DockerRuntimeClient(RuntimeClient):
    """RuntimeClient implementation backed by the Docker daemon.

    Example:
        ```python
        client = DockerRuntimeClient(docker.from_env())
        handle = client.create("alpine", ["echo", "hi"])
        client.start(handle)
        exit_code = client.wait_for_exit(handle)
        stdout, stderr = client.fetch_logs(handle)
        client.remove(handle)
        ```
    """

    def __init__(
        self,
        client: docker.DockerClient,
        wait_poll_seconds: float = DEFAULT_WAIT_POLL_SECONDS,
        force_remove: bool = True,
    ) -> None:
        """Initialize the runtime client.

        Args:
            client: Connected Docker client, owned by the caller
            wait_poll_seconds: Read timeout for one wait request; re-issued until exit
            force_remove: Remove containers even if still running
        """
        self._client = client
        self._wait_poll_seconds = wait_poll_seconds
        self._force_remove = force_remove

    def _container(self, handle: ContainerHandle) -> Container:
        return self._client.containers.prepare_model({"Id": handle.id})

    def create(
        self,
        image: str,
        command: Sequence[str],
        *,
        environment: Mapping[str, str] | None = None,
        name: str | None = None,
    ) -> ContainerHandle:
        kwargs: dict[str, Any] = {"command": list(command)}
        if environment:
            kwargs["environment"] = dict(environment)
        if name:
            kwargs["name"] = name

        try:
            container = self._client.containers.create(image, **kwargs)
        except ImageNotFound as e:
            raise RuntimeClientError(f"Image not found: {image} ({_daemon_message(e)})") from e
        except (DockerException, requests.exceptions.RequestException) as e:
            raise RuntimeClientError(_daemon_message(e)) from e

        return ContainerHandle(id=container.id)

    def start(self, handle: ContainerHandle) -> None:
        try:
            self._container(handle).start()
        except (DockerException, requests.exceptions.RequestException) as e:
            raise RuntimeClientError(_daemon_message(e)) from e

    def wait_for_exit(
        self, handle: ContainerHandle, abandon: threading.Event | None = None
    ) -> int:
        container = self._container(handle)
        while True:
            if abandon is not None and abandon.is_set():
                raise WaitAbandoned(f"Stopped waiting for container {handle.short_id}")
            try:
                result = container.wait(timeout=self._wait_poll_seconds)
            except (requests.exceptions.ReadTimeout, requests.exceptions.ConnectionError) as e:
                if _is_read_timeout(e):
                    logger.debug(f"Still waiting for container {handle.short_id}")
                    continue
                raise RuntimeClientError(str(e)) from e
            except NotFound as e:
                raise ContainerNotFound(_daemon_message(e)) from e
            except DockerException as e:
                raise RuntimeClientError(_daemon_message(e)) from e
            break

        if isinstance(result, dict):
            error = result.get("Error")
            if error and error.get("Message"):
                logger.warning(
                    f"Daemon reported wait error for {handle.short_id}: {error['Message']}"
                )
            return int(result.get("StatusCode", UNKNOWN_EXIT_CODE))
        return int(result)

    def stop(self, handle: ContainerHandle, grace_period: float) -> None:
        try:
            self._container(handle).stop(timeout=int(math.ceil(grace_period)))
        except NotFound as e:
            raise ContainerNotFound(_daemon_message(e)) from e
        except (DockerException, requests.exceptions.RequestException) as e:
            raise RuntimeClientError(_daemon_message(e)) from e

    def fetch_logs(self, handle: ContainerHandle) -> tuple[str, str]:
        container = self._container(handle)
        try:
            stdout = container.logs(stdout=True, stderr=False)
            stderr = container.logs(stdout=False, stderr=True)
        except NotFound as e:
            raise ContainerNotFound(_daemon_message(e)) from e
        except (DockerException, requests.exceptions.RequestException) as e:
            raise RuntimeClientError(_daemon_message(e)) from e

        return (
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    def remove(self, handle: ContainerHandle) -> None:
        try:
            self._container(handle).remove(force=self._force_remove)
        except NotFound as e:
            raise ContainerNotFound(_daemon_message(e)) from e
        except (DockerException, requests.exceptions.RequestException) as e:
            raise RuntimeClientError(_daemon_message(e)) from e
