"""
Server Supervisor - Manage the disposable IRC server container.

The container is a named singleton: a stale one left behind by a previous
failed run is force-removed before a fresh one is started, which also
frees the host port it was publishing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import docker
import docker.errors

if TYPE_CHECKING:
    from docker.models.containers import Container

from irc_harness.core.exceptions import CleanupFailed, HarnessError, ServerStartFailed
from irc_harness.core.logging import get_logger

logger = get_logger("server")


@dataclass
class ServerInstance:
    """A running server container and where it can be reached."""

    name: str
    image: str
    container_port: int
    host_port: int
    container_id: str

    def address(self, host: str) -> tuple[str, int]:
        return (host, self.host_port)


class ServerSupervisor:
    """
    Start, force-stop and restart a server container by name.

    Usage:
        supervisor = ServerSupervisor()
        supervisor.ensure_clean("tokio_test_ircd")
        server = supervisor.start("tokio_test_ircd", "inspircd/inspircd-docker:2.0.24", (6667, 6667))
        ...
        supervisor.stop("tokio_test_ircd")
    """

    def __init__(self, client: docker.DockerClient | None = None):
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except docker.errors.DockerException as e:
                raise HarnessError(
                    f"Cannot reach the docker daemon: {e}",
                    error_code="DOCKER_UNAVAILABLE",
                ) from e
        return self._client

    def ensure_clean(self, name: str) -> bool:
        """
        Force-remove any container called `name`.

        Returns True if a container was removed, False if none existed.
        """
        try:
            container = self.client.containers.get(name)
        except docker.errors.NotFound:
            logger.debug(f"No stale container named {name}")
            return False
        except docker.errors.APIError as e:
            raise HarnessError(
                f"Could not look up container {name}: {e}",
                error_code="STALE_SERVER",
            ) from e

        try:
            container.remove(force=True)
        except docker.errors.NotFound:
            # Removed concurrently
            return False
        except docker.errors.APIError as e:
            raise HarnessError(
                f"Could not remove stale container {name}: {e}",
                error_code="STALE_SERVER",
            ) from e

        logger.info(f"Removed stale container {name}")
        return True

    def start(
        self,
        name: str,
        image: str,
        port_mapping: tuple[int, int | None],
    ) -> ServerInstance:
        """
        Start a detached container publishing `container_port` on `host_port`.

        `port_mapping` is (container_port, host_port); a host_port of None
        lets docker choose a free port, which is read back after start.
        """
        container_port, host_port = port_mapping
        port_key = f"{container_port}/tcp"

        try:
            container = self.client.containers.run(
                image,
                name=name,
                detach=True,
                ports={port_key: host_port},
            )
        except docker.errors.ImageNotFound as e:
            raise ServerStartFailed(
                f"Image {image} is not available: {e}",
                details={"image": image, "name": name},
            ) from e
        except docker.errors.APIError as e:
            raise ServerStartFailed(
                f"Could not start {name} from {image}: {e}",
                details={"image": image, "name": name, "host_port": host_port},
            ) from e

        bound_port = host_port or self._published_port(container, port_key)
        logger.info(
            f"Started {name} ({image}) publishing {container_port} on host port {bound_port}"
        )
        return ServerInstance(
            name=name,
            image=image,
            container_port=container_port,
            host_port=bound_port,
            container_id=container.id,
        )

    def stop(self, name: str) -> CleanupFailed | None:
        """
        Best-effort forced removal.

        Returns a CleanupFailed describing the problem instead of raising.
        """
        try:
            self.client.containers.get(name).remove(force=True)
        except docker.errors.NotFound:
            return None
        except Exception as e:
            # A dropped daemon connection surfaces as a requests error, not DockerException
            failure = CleanupFailed("stop_server", e)
            logger.warning(failure.message)
            return failure

        logger.info(f"Removed container {name}")
        return None

    def restart(self, name: str, image: str, port_mapping: tuple[int, int | None]) -> ServerInstance:
        """Replace any container called `name` with a fresh one."""
        self.ensure_clean(name)
        return self.start(name, image, port_mapping)

    def logs(self, name: str, tail: int = 50) -> str:
        """Recent container logs for debugging; never raises."""
        try:
            container = self.client.containers.get(name)
            return container.logs(tail=tail).decode("utf-8", errors="replace")
        except Exception as e:
            return f"Error fetching logs: {e}"

    @staticmethod
    def _published_port(container: "Container", port_key: str) -> int:
        container.reload()
        bindings = (container.ports or {}).get(port_key) or []
        for binding in bindings:
            if binding.get("HostPort"):
                return int(binding["HostPort"])
        raise ServerStartFailed(
            f"Container {container.name} did not publish {port_key}",
            details={"ports": container.ports},
        )
