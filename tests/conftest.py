"""Pytest configuration and fixtures."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from irc_harness.core.config import HarnessSettings
from irc_harness.core.exceptions import ProcessFailed
from irc_harness.fixtures.output_verifier import OutputVerifier
from irc_harness.fixtures.readiness import ReadinessPoller
from irc_harness.fixtures.server_supervisor import ServerInstance, ServerSupervisor


FULL_OUTPUT = "joined #test\nHello World\nGoodbye world\n"
JOIN_ONLY_OUTPUT = "joined #test\n"
EPHEMERAL_PORT = 49153


class FakeClock:
    """Deterministic monotonic clock whose sleep advances time."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeRunner:
    """
    Stand-in for ProcessRunner.

    The "receiver" writes a fixed transcript into its output target; the
    "sender" exits with a configurable code.
    """

    def __init__(
        self,
        receiver_output: str = FULL_OUTPUT,
        sender_exit: int = 0,
        build_exit: int = 0,
    ):
        self.receiver_output = receiver_output
        self.sender_exit = sender_exit
        self.build_exit = build_exit
        self.calls: list[tuple[str, list[str], dict[str, str]]] = []
        self.terminated: list[object] = []
        self.terminate_result = None
        self.handle = None

    def run_background(self, executable, env, output_target):
        self.calls.append(("background", list(executable), dict(env)))
        Path(output_target).write_text(self.receiver_output)
        self.handle = SimpleNamespace(
            running=True,
            pid=4242,
            process=SimpleNamespace(returncode=None),
            output_path=Path(output_target),
        )
        return self.handle

    def run_foreground(self, executable, env, timeout=None):
        command = list(executable)
        self.calls.append(("foreground", command, dict(env)))
        code = self.build_exit if command[0] == "cargo" else self.sender_exit
        if code:
            raise ProcessFailed(command, code)
        return 0

    def terminate(self, handle):
        self.terminated.append(handle)
        return self.terminate_result


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path: Path) -> HarnessSettings:
    """Fast settings: no delays, artifacts under tmp_path."""
    return HarnessSettings(
        _env_file=None,
        artifacts_root=tmp_path,
        receiver_command="./print_messages --verbose",
        sender_command="./send_message",
        readiness_attempts=3,
        readiness_delay=0,
        server_settle_delay=0,
        receiver_settle_delay=0,
    )


@pytest.fixture
def supervisor() -> MagicMock:
    """ServerSupervisor double that 'starts' containers instantly."""
    sup = MagicMock(spec=ServerSupervisor)
    sup.ensure_clean.return_value = False
    sup.start.side_effect = lambda name, image, mapping: ServerInstance(
        name=name,
        image=image,
        container_port=mapping[0],
        host_port=mapping[1] or EPHEMERAL_PORT,
        container_id="c0ffee",
    )
    sup.stop.return_value = None
    sup.logs.return_value = "server: client connected\n"
    return sup


@pytest.fixture
def reachable_poller(clock: FakeClock) -> ReadinessPoller:
    return ReadinessPoller(connect=lambda address, timeout: None, sleep=clock.sleep)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def verifier(clock: FakeClock) -> OutputVerifier:
    return OutputVerifier(sleep=clock.sleep, clock=clock)


@pytest.fixture
def make_runner():
    """Factory for FakeRunner with custom transcript / exit codes."""
    return FakeRunner
