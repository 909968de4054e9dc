"""Harness logging: every line carries the run id and the current step."""

from __future__ import annotations

import logging
import sys
import json
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional


run_id_var: ContextVar[Optional[str]] = ContextVar("run_id", default=None)

# HarnessState value of the step being executed
state_var: ContextVar[Optional[str]] = ContextVar("harness_state", default=None)


def _context_prefix() -> str:
    run_id = run_id_var.get()
    state = state_var.get()
    if run_id and state:
        return f"[{run_id[:8]} {state}] "
    if run_id:
        return f"[{run_id[:8]}] "
    return ""


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter."""

    def __init__(self, include_location: bool = False):
        super().__init__()
        self.include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        run_id = run_id_var.get()
        if run_id:
            log_data["run_id"] = run_id

        state = state_var.get()
        if state:
            log_data["state"] = state

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.include_location:
            log_data["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        base = f"{timestamp} {record.levelname:8} {_context_prefix()}{record.name}: {record.getMessage()}"

        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)

        return base


def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """Configure harness logging on the root logger."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stderr keeps stdout free for the failure dump
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(getattr(logging, level))

    if log_format == "json":
        handler.setFormatter(StructuredFormatter(include_location=level == "DEBUG"))
    else:
        handler.setFormatter(TextFormatter())

    root_logger.addHandler(handler)

    logging.getLogger("docker").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the irc_harness prefix."""
    return logging.getLogger(f"irc_harness.{name}")
