"""
System Test Configuration - live docker and example binaries.

Every test here talks to a real docker daemon. The session fixtures skip
the whole directory when the daemon or the example binaries are missing,
so a plain `pytest` on a developer laptop stays green.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Generator

import docker
import docker.errors
import pytest

from irc_harness.core.config import HarnessSettings, get_settings


# =============================================================================
# CONFIGURATION
# =============================================================================


@pytest.fixture(scope="session")
def system_settings() -> HarnessSettings:
    """Load harness settings from IRC_HARNESS_* / .env."""
    return get_settings()


# =============================================================================
# DOCKER CLIENT
# =============================================================================


@pytest.fixture(scope="session")
def docker_client() -> Generator[docker.DockerClient, None, None]:
    """Docker client, or skip when no daemon is reachable."""
    try:
        client = docker.from_env()
        client.ping()
    except docker.errors.DockerException as e:
        pytest.skip(f"Docker daemon not reachable: {e}")

    yield client
    client.close()


# =============================================================================
# EXAMPLE BINARIES
# =============================================================================


def _resolve(command: list[str], working_dir: Path | None) -> bool:
    executable = command[0]
    if "/" in executable:
        return (Path(working_dir or ".") / executable).exists()
    return shutil.which(executable) is not None


@pytest.fixture(scope="session")
def examples_available(system_settings: HarnessSettings) -> None:
    """Skip unless the receiver and sender exist or will be built."""
    if system_settings.build_argv:
        return

    missing = [
        argv[0]
        for argv in (system_settings.receiver_argv, system_settings.sender_argv)
        if not _resolve(argv, system_settings.working_dir)
    ]
    if missing:
        pytest.skip(
            f"Example binaries not found: {missing}\n"
            f"Build them with `cargo build --examples` or set IRC_HARNESS_BUILD_COMMAND"
        )


# =============================================================================
# PYTEST HOOKS
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "system: Live run against docker and the real example binaries",
    )


def pytest_collection_modifyitems(config, items):
    """Mark everything under system_tests/."""
    for item in items:
        if "system_tests" in str(item.fspath):
            item.add_marker(pytest.mark.system)
