"""
Output Verifier - Check captured receiver output for marker strings.

Verification only happens after the sender has exited, so whatever the
receiver saw has already been written to the artifact.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Iterable

from irc_harness.core.exceptions import MissingExpectedContent
from irc_harness.core.logging import get_logger

logger = get_logger("verifier")


def read_artifact(artifact_path: Path | str) -> str:
    """Full artifact text; a missing file reads as empty."""
    path = Path(artifact_path)
    try:
        return path.read_bytes().decode("utf-8", errors="replace")
    except FileNotFoundError:
        return ""


class OutputVerifier:
    """
    Assert that marker strings are present in a captured output file.

    Usage:
        verifier = OutputVerifier()
        verifier.verify_all(tmpdir / "recvd", ["Hello World", "Goodbye world"])
    """

    def __init__(
        self,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._sleep = sleep
        self._clock = clock

    def assert_contains(self, artifact_path: Path | str, required_substring: str) -> None:
        """Raise MissingExpectedContent unless the substring is present."""
        content = read_artifact(artifact_path)
        if required_substring not in content:
            raise MissingExpectedContent(
                [required_substring], content, artifact=str(artifact_path)
            )
        logger.debug(f"Found '{required_substring}' in {artifact_path}")

    def verify_all(self, artifact_path: Path | str, markers: Iterable[str]) -> None:
        """
        Every marker must be present.

        One read, one MissingExpectedContent naming all missing markers in
        the order they were given.
        """
        markers = list(markers)
        content = read_artifact(artifact_path)
        missing = [m for m in markers if m not in content]

        if missing:
            for marker in missing:
                logger.error(f"Expected contents to contain '{marker}'")
            raise MissingExpectedContent(missing, content, artifact=str(artifact_path))

        logger.info(f"All {len(markers)} marker(s) present in {artifact_path}")

    def wait_for_marker(
        self,
        artifact_path: Path | str,
        marker: str,
        timeout: float,
        poll_interval: float = 0.25,
    ) -> bool:
        """Poll the artifact until `marker` shows up or `timeout` elapses."""
        deadline = self._clock() + timeout

        while True:
            if marker in read_artifact(artifact_path):
                logger.info(f"Saw '{marker}' in {artifact_path}")
                return True
            if self._clock() >= deadline:
                return False
            self._sleep(poll_interval)
