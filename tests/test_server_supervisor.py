"""Tests for the docker-backed server supervisor."""

from __future__ import annotations

from unittest.mock import MagicMock

import docker.errors
import pytest
import requests

from irc_harness.core.exceptions import CleanupFailed, HarnessError, ServerStartFailed
from irc_harness.fixtures.server_supervisor import ServerSupervisor


NAME = "tokio_test_ircd"
IMAGE = "inspircd/inspircd-docker:2.0.24"


@pytest.fixture
def docker_client() -> MagicMock:
    client = MagicMock()
    client.containers.get.side_effect = docker.errors.NotFound("No such container")
    return client


@pytest.fixture
def supervisor(docker_client: MagicMock) -> ServerSupervisor:
    return ServerSupervisor(client=docker_client)


class TestEnsureClean:
    """Stale container removal."""

    def test_absent_container_is_success(self, supervisor):
        """No container with that name: nothing to do, no error."""
        assert supervisor.ensure_clean(NAME) is False

    def test_idempotent(self, supervisor, docker_client):
        """Twice in a row behaves exactly like once."""
        assert supervisor.ensure_clean(NAME) is False
        assert supervisor.ensure_clean(NAME) is False
        assert docker_client.containers.get.call_count == 2

    def test_removes_existing_container(self, supervisor, docker_client):
        """A stale container is force-removed."""
        stale = MagicMock()
        docker_client.containers.get.side_effect = None
        docker_client.containers.get.return_value = stale

        assert supervisor.ensure_clean(NAME) is True
        stale.remove.assert_called_once_with(force=True)

    def test_container_vanishing_mid_removal_is_fine(self, supervisor, docker_client):
        stale = MagicMock()
        stale.remove.side_effect = docker.errors.NotFound("gone")
        docker_client.containers.get.side_effect = None
        docker_client.containers.get.return_value = stale

        assert supervisor.ensure_clean(NAME) is False

    def test_removal_failure_is_fatal(self, supervisor, docker_client):
        """Anything other than 'not found' stops the run."""
        stale = MagicMock()
        stale.remove.side_effect = docker.errors.APIError("device busy")
        docker_client.containers.get.side_effect = None
        docker_client.containers.get.return_value = stale

        with pytest.raises(HarnessError) as exc_info:
            supervisor.ensure_clean(NAME)

        assert exc_info.value.error_code == "STALE_SERVER"


class TestStart:
    """Container creation."""

    def test_publishes_fixed_port(self, supervisor, docker_client):
        container = MagicMock(id="abc123")
        docker_client.containers.run.return_value = container

        server = supervisor.start(NAME, IMAGE, (6667, 6667))

        docker_client.containers.run.assert_called_once_with(
            IMAGE, name=NAME, detach=True, ports={"6667/tcp": 6667}
        )
        assert server.host_port == 6667
        assert server.container_id == "abc123"
        assert server.address("localhost") == ("localhost", 6667)

    def test_ephemeral_port_is_read_back(self, supervisor, docker_client):
        """host_port None lets docker choose; the binding is discovered."""
        container = MagicMock(id="abc123")
        container.ports = {
            "6667/tcp": [
                {"HostIp": "0.0.0.0", "HostPort": "49153"},
                {"HostIp": "::", "HostPort": "49153"},
            ]
        }
        docker_client.containers.run.return_value = container

        server = supervisor.start(NAME, IMAGE, (6667, None))

        assert docker_client.containers.run.call_args.kwargs["ports"] == {"6667/tcp": None}
        container.reload.assert_called_once()
        assert server.host_port == 49153

    def test_missing_binding_fails(self, supervisor, docker_client):
        container = MagicMock(id="abc123")
        container.ports = {}
        docker_client.containers.run.return_value = container

        with pytest.raises(ServerStartFailed):
            supervisor.start(NAME, IMAGE, (6667, None))

    def test_missing_image_fails(self, supervisor, docker_client):
        docker_client.containers.run.side_effect = docker.errors.ImageNotFound("no image")

        with pytest.raises(ServerStartFailed) as exc_info:
            supervisor.start(NAME, IMAGE, (6667, 6667))

        assert exc_info.value.exit_code == 5
        assert exc_info.value.details["image"] == IMAGE

    def test_port_conflict_fails(self, supervisor, docker_client):
        docker_client.containers.run.side_effect = docker.errors.APIError(
            "port is already allocated"
        )

        with pytest.raises(ServerStartFailed) as exc_info:
            supervisor.start(NAME, IMAGE, (6667, 6667))

        assert "already allocated" in exc_info.value.message

    def test_restart_cleans_then_starts(self, supervisor, docker_client):
        docker_client.containers.run.return_value = MagicMock(id="fresh")

        server = supervisor.restart(NAME, IMAGE, (6667, 6667))

        docker_client.containers.get.assert_called_once_with(NAME)
        assert server.container_id == "fresh"


class TestStop:
    """Best-effort teardown."""

    def test_removes_container(self, supervisor, docker_client):
        container = MagicMock()
        docker_client.containers.get.side_effect = None
        docker_client.containers.get.return_value = container

        assert supervisor.stop(NAME) is None
        container.remove.assert_called_once_with(force=True)

    def test_absent_container_is_not_a_failure(self, supervisor):
        assert supervisor.stop(NAME) is None

    def test_failure_is_returned_not_raised(self, supervisor, docker_client):
        docker_client.containers.get.side_effect = docker.errors.APIError("daemon gone")

        failure = supervisor.stop(NAME)

        assert isinstance(failure, CleanupFailed)
        assert failure.step == "stop_server"


class TestLogs:
    def test_returns_decoded_tail(self, supervisor, docker_client):
        container = MagicMock()
        container.logs.return_value = b"*** Server started\n"
        docker_client.containers.get.side_effect = None
        docker_client.containers.get.return_value = container

        assert supervisor.logs(NAME, tail=10) == "*** Server started\n"
        container.logs.assert_called_once_with(tail=10)

    def test_never_raises(self, supervisor):
        assert supervisor.logs(NAME).startswith("Error fetching logs")


class TestLostDaemonConnection:
    """Transport errors from the SDK are not DockerException subclasses."""

    def test_stop_returns_failure(self, supervisor, docker_client):
        docker_client.containers.get.side_effect = requests.exceptions.ConnectionError(
            "Connection aborted"
        )

        failure = supervisor.stop(NAME)

        assert isinstance(failure, CleanupFailed)
        assert "Connection aborted" in failure.message

    def test_logs_returns_error_text(self, supervisor, docker_client):
        docker_client.containers.get.side_effect = requests.exceptions.ConnectionError(
            "Connection aborted"
        )

        assert supervisor.logs(NAME) == "Error fetching logs: Connection aborted"
