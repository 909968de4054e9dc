"""
Process Runner - Launch the client example executables.

Foreground runs block until exit and turn a non-zero status into
ProcessFailed. Background runs redirect stdout/stderr into a file the
harness reads later and hand back a handle for the final kill.

The only configuration the children receive is the environment overlay
(the server address); there is no other channel between them.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import IO, Mapping, Sequence

from irc_harness.core.exceptions import CleanupFailed, ProcessFailed
from irc_harness.core.logging import get_logger

logger = get_logger("processes")

# Shell convention for "command not found"
SPAWN_FAILED_CODE = 127


@dataclass
class BackgroundProcess:
    """Handle to a backgrounded process and its captured output."""

    command: list[str]
    process: subprocess.Popen
    output_path: Path
    output_file: IO[bytes] | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return self.process.poll() is None


class ProcessRunner:
    """
    Spawn executables with an environment overlay.

    Usage:
        runner = ProcessRunner(cwd=repo_root)
        receiver = runner.run_background(["./print_messages"], env, out_path)
        runner.run_foreground(["./send_message"], env)
        runner.terminate(receiver)
    """

    def __init__(self, cwd: Path | str | None = None):
        self.cwd = str(cwd) if cwd is not None else None

    def _environ(self, env: Mapping[str, str]) -> dict[str, str]:
        merged = dict(os.environ)
        merged.update(env)
        return merged

    def run_foreground(
        self,
        executable: Sequence[str],
        env: Mapping[str, str],
        timeout: float | None = None,
    ) -> int:
        """
        Run to completion and return the exit code (always 0).

        Raises:
            ProcessFailed: non-zero exit, timeout, or spawn failure.
        """
        command = list(executable)
        logger.info(f"Running {' '.join(command)}")

        try:
            result = subprocess.run(
                command,
                env=self._environ(env),
                cwd=self.cwd,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            # subprocess.run kills the child before re-raising
            raise ProcessFailed(command, -9, timed_out=True) from e
        except OSError as e:
            logger.error(f"Could not spawn {command[0]}: {e}")
            raise ProcessFailed(command, SPAWN_FAILED_CODE) from e

        if result.returncode != 0:
            raise ProcessFailed(command, result.returncode)

        logger.info(f"{command[0]} exited cleanly")
        return result.returncode

    def run_background(
        self,
        executable: Sequence[str],
        env: Mapping[str, str],
        output_target: Path | str,
    ) -> BackgroundProcess:
        """Start without waiting; stdout and stderr go to `output_target`."""
        command = list(executable)
        output_path = Path(output_target)
        output_file = output_path.open("wb")

        try:
            process = subprocess.Popen(
                command,
                env=self._environ(env),
                cwd=self.cwd,
                stdin=subprocess.DEVNULL,
                stdout=output_file,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            output_file.close()
            logger.error(f"Could not spawn {command[0]}: {e}")
            raise ProcessFailed(command, SPAWN_FAILED_CODE) from e

        logger.info(f"Started {' '.join(command)} (pid {process.pid}) -> {output_path}")
        return BackgroundProcess(
            command=command,
            process=process,
            output_path=output_path,
            output_file=output_file,
        )

    def terminate(self, handle: BackgroundProcess) -> CleanupFailed | None:
        """
        SIGKILL the process and close its output file.

        Returns a CleanupFailed instead of raising.
        """
        failure: CleanupFailed | None = None

        try:
            if handle.running:
                handle.process.kill()
            code = handle.process.wait(timeout=10)
            logger.info(f"{handle.command[0]} (pid {handle.pid}) stopped with code {code}")
        except (OSError, subprocess.TimeoutExpired) as e:
            failure = CleanupFailed("terminate_receiver", e)
            logger.warning(failure.message)

        if handle.output_file is not None and not handle.output_file.closed:
            try:
                handle.output_file.close()
            except OSError as e:
                failure = failure or CleanupFailed("close_receiver_output", e)
                logger.warning(f"Could not close {handle.output_path}: {e}")

        return failure
