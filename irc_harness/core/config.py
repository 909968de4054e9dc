"""Harness settings with Pydantic validation and environment loading."""

from __future__ import annotations

import shlex
from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class HarnessSettings(BaseSettings):
    """Harness settings loaded from IRC_HARNESS_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="IRC_HARNESS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server container
    server_name: str = Field(
        default="tokio_test_ircd", min_length=1, description="Logical container name"
    )
    unique_server_name: bool = Field(
        default=False,
        description="Append the run id to server_name so parallel runs do not collide",
    )
    server_image: str = Field(default="inspircd/inspircd-docker:2.0.24")
    server_host: str = Field(
        default="localhost", description="Host the clients and the poller connect to"
    )
    container_port: int = Field(default=6667, ge=1, le=65535)
    host_port: Optional[int] = Field(
        default=6667,
        ge=0,
        le=65535,
        description="Published host port; 0 or unset lets docker pick one",
    )
    server_env_var: str = Field(
        default="IRC_SERVER",
        description="Variable that carries host:port to the client executables",
    )
    keep_server: bool = Field(
        default=False, description="Leave the server container running after the run"
    )

    # Readiness budget
    readiness_attempts: int = Field(default=10, ge=1)
    readiness_attempt_timeout: float = Field(default=1.0, gt=0)
    readiness_delay: float = Field(default=2.0, ge=0)
    server_settle_delay: float = Field(default=2.0, ge=0)

    # Client executables
    build_command: Optional[str] = Field(
        default=None, description="Optional command that builds the example binaries"
    )
    receiver_command: str = Field(default="./target/debug/examples/print_messages")
    sender_command: str = Field(default="./target/debug/examples/send_message")
    working_dir: Optional[Path] = Field(
        default=None, description="Working directory for build/receiver/sender"
    )

    # Receiver coordination
    receiver_settle_delay: float = Field(default=5.0, ge=0)
    receiver_ready_marker: Optional[str] = Field(
        default=None,
        description="Output line the receiver prints once joined; replaces the fixed settle delay",
    )
    receiver_ready_timeout: float = Field(default=30.0, gt=0)
    ready_poll_interval: float = Field(default=0.25, gt=0)

    # Sender
    sender_timeout: Optional[float] = Field(
        default=None, gt=0, description="Maximum sender runtime; unset means unbounded"
    )

    # Verification
    expected_markers: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["Hello World", "Goodbye world"]
    )

    # Artifacts
    artifacts_root: Optional[Path] = Field(
        default=None, description="Parent directory for the per-run temp dir"
    )
    keep_artifacts: bool = False
    keep_artifacts_on_failure: bool = True

    # Logging
    log_level: str = Field(
        default="INFO", description="Log level: DEBUG, INFO, WARNING, ERROR"
    )
    log_format: str = Field(default="text", description="Log format: json or text")

    @field_validator("host_port", mode="before")
    @classmethod
    def parse_host_port(cls, v):
        if v in ("", 0, "0"):
            return None
        return v

    @field_validator("expected_markers", mode="before")
    @classmethod
    def parse_markers(cls, v):
        if isinstance(v, str):
            return [m.strip() for m in v.split(",") if m.strip()]
        return v

    @field_validator("expected_markers")
    @classmethod
    def require_markers(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("at least one expected marker is required")
        return v

    @field_validator("build_command", "receiver_ready_marker", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        lower = v.lower()
        if lower not in {"json", "text"}:
            raise ValueError("log_format must be 'json' or 'text'")
        return lower

    @property
    def receiver_argv(self) -> list[str]:
        return shlex.split(self.receiver_command)

    @property
    def sender_argv(self) -> list[str]:
        return shlex.split(self.sender_command)

    @property
    def build_argv(self) -> list[str] | None:
        return shlex.split(self.build_command) if self.build_command else None

    def resolve_server_name(self, run_id: str) -> str:
        """Container name for this run."""
        if self.unique_server_name:
            return f"{self.server_name}-{run_id}"
        return self.server_name


@lru_cache
def get_settings() -> HarnessSettings:
    """Cached settings factory."""
    return HarnessSettings()
