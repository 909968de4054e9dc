"""
Run Report - Structured record of one harness run.

Written next to the captured receiver output so a failed run can be
diagnosed from the artifacts directory alone:
1. Machine-parseable (JSON)
2. Carries the captured output and recent server logs
3. Keeps the verdict and cleanup diagnostics apart
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any


@dataclass
class RunReport:
    """Everything needed to understand a run after the fact."""

    run_id: str
    started_at: datetime
    finished_at: datetime
    succeeded: bool

    # Last state entered; the failing one when succeeded is False
    final_state: str
    server_name: str
    server_address: str | None = None
    markers: list[str] = field(default_factory=list)

    # Primary verdict
    error: dict[str, Any] | None = None

    # Secondary channel, never part of the verdict
    cleanup_errors: list[str] = field(default_factory=list)

    # Evidence
    receiver_output: str = ""
    server_logs: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_seconds": (self.finished_at - self.started_at).total_seconds(),
            "succeeded": self.succeeded,
            "summary": self._generate_summary(),
            "final_state": self.final_state,
            "server": {
                "name": self.server_name,
                "address": self.server_address,
            },
            "markers": self.markers,
            "error": self.error,
            "cleanup_errors": self.cleanup_errors,
            "receiver_output": self.receiver_output,
            "server_logs": self.server_logs,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, default=str)

    def save(self, directory: Path | str) -> Path:
        """Save report.json and report.md into `directory`; return the JSON path."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        filepath = directory / "report.json"
        filepath.write_text(self.to_json())
        (directory / "report.md").write_text(self.to_markdown())

        return filepath

    def _generate_summary(self) -> str:
        if self.succeeded:
            parts = ["Success"]
        elif self.error:
            parts = [f"{self.error.get('error')} in {self.final_state}: {self.error.get('message')}"]
        else:
            parts = [f"Failed in {self.final_state}"]

        if self.cleanup_errors:
            parts.append(f"{len(self.cleanup_errors)} cleanup warning(s)")

        return " | ".join(parts)

    def to_markdown(self) -> str:
        """Markdown rendering for human review."""
        duration = (self.finished_at - self.started_at).total_seconds()

        md = f"""# Harness Run `{self.run_id}`

**Server:** `{self.server_name}` at `{self.server_address or 'n/a'}`
**Duration:** {duration:.2f}s
**Summary:** {self._generate_summary()}
"""

        if self.error:
            md += f"\n## Failure\n\n```\n{self.error.get('message')}\n```\n"

        if self.markers:
            md += "\n## Markers\n\n"
            for marker in self.markers:
                found = marker in self.receiver_output
                md += f"- [{'x' if found else ' '}] `{marker}`\n"

        if self.cleanup_errors:
            md += "\n## Cleanup Warnings\n\n"
            for warning in self.cleanup_errors:
                md += f"- {warning}\n"

        md += f"\n## Receiver Output\n\n```\n{self.receiver_output}\n```\n"

        if self.server_logs:
            md += f"\n## Server Logs\n\n```\n{self.server_logs}\n```\n"

        return md
