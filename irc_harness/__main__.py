"""Command line entry point: python -m irc_harness / irc-harness."""

from __future__ import annotations

import argparse
import sys
from typing import Any, Sequence

from pydantic import ValidationError

from irc_harness.core.config import HarnessSettings
from irc_harness.core.exceptions import MissingExpectedContent
from irc_harness.core.logging import setup_logging
from irc_harness.runner import Harness, RunOutcome


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="irc-harness",
        description="Run the IRC client examples against a disposable server container.",
    )
    parser.add_argument("--receiver", dest="receiver_command", help="Receiver command line")
    parser.add_argument("--sender", dest="sender_command", help="Sender command line")
    parser.add_argument("--build", dest="build_command", help="Command that builds the examples")
    parser.add_argument(
        "--marker",
        dest="expected_markers",
        action="append",
        help="Required marker in the receiver output (repeatable)",
    )
    parser.add_argument("--image", dest="server_image", help="Server image")
    parser.add_argument("--name", dest="server_name", help="Server container name")
    parser.add_argument("--host-port", dest="host_port", type=int, help="0 picks a free port")
    parser.add_argument("--ready-marker", dest="receiver_ready_marker")
    parser.add_argument("--sender-timeout", dest="sender_timeout", type=float)
    parser.add_argument(
        "--unique-name", dest="unique_server_name", action="store_true", default=None
    )
    parser.add_argument(
        "--keep-artifacts", dest="keep_artifacts", action="store_true", default=None
    )
    parser.add_argument("--keep-server", dest="keep_server", action="store_true", default=None)
    parser.add_argument("--log-level", dest="log_level")
    parser.add_argument("--log-format", dest="log_format", choices=["text", "json"])
    return parser


def load_settings(argv: Sequence[str] | None = None) -> HarnessSettings:
    """Environment first, then command line overrides."""
    args = build_parser().parse_args(argv)
    overrides: dict[str, Any] = {k: v for k, v in vars(args).items() if v is not None}
    return HarnessSettings(**overrides)


def report_failure(outcome: RunOutcome) -> None:
    """Print the failing condition, and the captured output for content mismatches."""
    error = outcome.error
    state = outcome.failed_state.value if outcome.failed_state else "unknown"
    print(f"FAILED in {state}: {error.message if error else 'unknown error'}")

    if isinstance(error, MissingExpectedContent):
        for marker in error.missing:
            print(f"Expected contents to contain '{marker}'; was:")
        print(error.content, end="" if error.content.endswith("\n") else "\n")

    if outcome.artifacts_dir:
        print(f"Artifacts: {outcome.artifacts_dir}")


def main(argv: Sequence[str] | None = None) -> int:
    try:
        settings = load_settings(argv)
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return 1

    setup_logging(settings.log_level, settings.log_format)

    outcome = Harness(settings).run()

    if outcome.succeeded:
        print(f"PASSED ({outcome.run_id})")
    else:
        report_failure(outcome)

    for failure in outcome.cleanup_errors:
        print(f"warning: {failure.message}", file=sys.stderr)

    return outcome.exit_code


if __name__ == "__main__":
    sys.exit(main())
