"""Harness error taxonomy."""

from __future__ import annotations

from typing import Any, Sequence


class HarnessError(Exception):
    """Base harness exception with a structured error payload."""

    exit_code: int = 1
    error_code: str = "HARNESS_ERROR"
    message: str = "Harness run failed"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        exit_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.exit_code = exit_code or self.exit_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "exit_code": self.exit_code,
            **({"details": self.details} if self.details else {}),
        }


class ServiceUnavailable(HarnessError):
    """Readiness budget exhausted before the server accepted a connection."""

    exit_code = 2
    error_code = "SERVICE_UNAVAILABLE"

    def __init__(self, address: tuple[str, int], attempts: int):
        self.address = address
        self.attempts = attempts
        host, port = address
        super().__init__(
            f"{host}:{port} did not come up after {attempts} attempt(s)",
            details={"address": f"{host}:{port}", "attempts": attempts},
        )


class ProcessFailed(HarnessError):
    """A foreground process exited non-zero, timed out, or could not start."""

    exit_code = 3
    error_code = "PROCESS_FAILED"

    def __init__(
        self,
        command: Sequence[str],
        returncode: int,
        timed_out: bool = False,
    ):
        self.command = list(command)
        self.returncode = returncode
        self.timed_out = timed_out
        joined = " ".join(self.command)
        if timed_out:
            message = f"{joined} timed out and was killed"
        else:
            message = f"{joined} exited with code {returncode}"
        super().__init__(
            message,
            details={
                "command": self.command,
                "returncode": returncode,
                "timed_out": timed_out,
            },
        )


class MissingExpectedContent(HarnessError):
    """One or more required markers were absent from the captured output."""

    exit_code = 4
    error_code = "MISSING_EXPECTED_CONTENT"

    def __init__(self, missing: Sequence[str], content: str, artifact: str = ""):
        self.missing = list(missing)
        self.content = content
        self.artifact = artifact
        quoted = ", ".join(f"'{m}'" for m in self.missing)
        super().__init__(
            f"Expected contents to contain {quoted}",
            details={"missing": self.missing, "artifact": artifact},
        )


class ServerStartFailed(HarnessError):
    """The server container could not be created."""

    exit_code = 5
    error_code = "SERVER_START_FAILED"


class ReceiverNotReady(HarnessError):
    """The receiver never printed its ready marker."""

    exit_code = 6
    error_code = "RECEIVER_NOT_READY"

    def __init__(self, marker: str, timeout: float):
        self.marker = marker
        self.timeout = timeout
        super().__init__(
            f"Receiver did not print '{marker}' within {timeout:g}s",
            details={"marker": marker, "timeout": timeout},
        )


class CleanupFailed(HarnessError):
    """A best-effort teardown step failed. Logged, never fatal."""

    error_code = "CLEANUP_FAILED"

    def __init__(self, step: str, cause: BaseException | str):
        self.step = step
        self.cause = cause
        super().__init__(
            f"Cleanup step '{step}' failed: {cause}",
            details={"step": step, "cause": str(cause)},
        )
