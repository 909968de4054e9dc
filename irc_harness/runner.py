"""
Harness - The fixed end-to-end scenario for the IRC client examples.

Sequence (strict, first failure aborts the forward path):
    BuildExamples (optional) -> CleanPriorState -> StartServer
    -> AwaitReadiness -> SettleServer -> StartReceiver -> SettleReceiver
    -> RunSender -> VerifyOutputs
Cleanup always runs exactly once afterwards, whatever happened.

The verdict and the cleanup diagnostics are kept in separate channels:
a cleanup failure is logged and reported but never changes the exit code.
"""

from __future__ import annotations

import shutil
import tempfile
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from pathlib import Path
from typing import Callable

from irc_harness.core.config import HarnessSettings
from irc_harness.core.exceptions import CleanupFailed, HarnessError, ReceiverNotReady
from irc_harness.core.logging import get_logger, run_id_var, state_var
from irc_harness.fixtures.output_verifier import OutputVerifier, read_artifact
from irc_harness.fixtures.processes import BackgroundProcess, ProcessRunner
from irc_harness.fixtures.readiness import ReadinessPoller
from irc_harness.fixtures.server_supervisor import ServerInstance, ServerSupervisor
from irc_harness.reporters.run_report import RunReport

logger = get_logger("harness")

OUTPUT_FILENAME = "recvd"


class HarnessState(Enum):
    """Harness steps, in execution order."""

    BUILD_EXAMPLES = "BuildExamples"
    CLEAN_PRIOR_STATE = "CleanPriorState"
    START_SERVER = "StartServer"
    AWAIT_READINESS = "AwaitReadiness"
    SETTLE_SERVER = "SettleServer"
    START_RECEIVER = "StartReceiver"
    SETTLE_RECEIVER = "SettleReceiver"
    RUN_SENDER = "RunSender"
    VERIFY_OUTPUTS = "VerifyOutputs"
    CLEANUP = "Cleanup"


@dataclass
class RunOutcome:
    """Result of one harness invocation."""

    run_id: str
    succeeded: bool
    failed_state: HarnessState | None = None
    error: HarnessError | None = None
    cleanup_errors: list[CleanupFailed] = field(default_factory=list)
    receiver_output: str = ""
    artifacts_dir: Path | None = None
    report_path: Path | None = None

    @property
    def exit_code(self) -> int:
        if self.succeeded:
            return 0
        return self.error.exit_code if self.error else 1


class Harness:
    """
    Drive the server container and the two client processes.

    Usage:
        outcome = Harness(get_settings()).run()
        sys.exit(outcome.exit_code)

    Collaborators are injectable so the sequencing can be tested without
    docker or real binaries.
    """

    def __init__(
        self,
        settings: HarnessSettings,
        supervisor: ServerSupervisor | None = None,
        poller: ReadinessPoller | None = None,
        runner: ProcessRunner | None = None,
        verifier: OutputVerifier | None = None,
        sleep: Callable[[float], None] = time.sleep,
        run_id: str | None = None,
    ):
        self.settings = settings
        self.supervisor = supervisor or ServerSupervisor()
        self.poller = poller or ReadinessPoller()
        self.runner = runner or ProcessRunner(cwd=settings.working_dir)
        self.verifier = verifier or OutputVerifier()
        self._sleep = sleep

        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.server_name = settings.resolve_server_name(self.run_id)
        self.history: list[HarnessState] = []
        self.state: HarnessState | None = None

        self._server: ServerInstance | None = None
        self._receiver: BackgroundProcess | None = None
        self._artifacts_dir: Path | None = None

    @property
    def server_address(self) -> tuple[str, int] | None:
        if self._server is None:
            return None
        return self._server.address(self.settings.server_host)

    def run(self) -> RunOutcome:
        """Run the scenario once. Failures are returned in the outcome, not raised."""
        token = run_id_var.set(self.run_id)
        state_token = state_var.set(None)
        started_at = datetime.now(UTC)
        error: HarnessError | None = None
        failed_state: HarnessState | None = None

        try:
            self._artifacts_dir = Path(
                tempfile.mkdtemp(prefix="irc-harness-", dir=self.settings.artifacts_root)
            )
            logger.info(f"Run {self.run_id} artifacts in {self._artifacts_dir}")

            try:
                self._forward()
            except HarnessError as e:
                error = e
                failed_state = self.state
                logger.error(f"{self.state.value} failed: {e.message}")
            except Exception as e:
                error = HarnessError(
                    f"Unexpected {type(e).__name__}: {e}",
                    error_code="UNEXPECTED_ERROR",
                )
                failed_state = self.state
                logger.exception(f"{self.state.value if self.state else 'Setup'} crashed")
            finally:
                cleanup_errors, server_logs = self._cleanup(failed=error is not None)

            outcome = RunOutcome(
                run_id=self.run_id,
                succeeded=error is None,
                failed_state=failed_state,
                error=error,
                cleanup_errors=cleanup_errors,
                receiver_output=read_artifact(self._artifacts_dir / OUTPUT_FILENAME),
            )
            self._finalize_artifacts(outcome, started_at, server_logs)
        finally:
            state_var.reset(state_token)
            run_id_var.reset(token)

        if outcome.succeeded:
            logger.info(f"Run {self.run_id} passed")
        return outcome

    # ------------------------------------------------------------------
    # Forward path
    # ------------------------------------------------------------------

    def _set_state(self, state: HarnessState) -> None:
        self.history.append(state)
        state_var.set(state.value)
        logger.debug(f"Entering {state.value}")

    def _enter(self, state: HarnessState) -> None:
        self.state = state
        self._set_state(state)

    def _client_env(self) -> dict[str, str]:
        host, port = self.server_address
        return {self.settings.server_env_var: f"{host}:{port}"}

    def _forward(self) -> None:
        settings = self.settings

        if settings.build_argv:
            self._enter(HarnessState.BUILD_EXAMPLES)
            self.runner.run_foreground(settings.build_argv, {})

        self._enter(HarnessState.CLEAN_PRIOR_STATE)
        self.supervisor.ensure_clean(self.server_name)

        self._enter(HarnessState.START_SERVER)
        self._server = self.supervisor.start(
            self.server_name,
            settings.server_image,
            (settings.container_port, settings.host_port),
        )

        self._enter(HarnessState.AWAIT_READINESS)
        self.poller.wait_until_reachable(
            self.server_address,
            settings.readiness_attempts,
            settings.readiness_attempt_timeout,
            settings.readiness_delay,
        )

        self._enter(HarnessState.SETTLE_SERVER)
        self._sleep(settings.server_settle_delay)

        env = self._client_env()
        output_path = self._artifacts_dir / OUTPUT_FILENAME

        self._enter(HarnessState.START_RECEIVER)
        self._receiver = self.runner.run_background(settings.receiver_argv, env, output_path)

        self._enter(HarnessState.SETTLE_RECEIVER)
        if settings.receiver_ready_marker:
            ready = self.verifier.wait_for_marker(
                output_path,
                settings.receiver_ready_marker,
                settings.receiver_ready_timeout,
                settings.ready_poll_interval,
            )
            if not ready:
                raise ReceiverNotReady(
                    settings.receiver_ready_marker, settings.receiver_ready_timeout
                )
        else:
            self._sleep(settings.receiver_settle_delay)

        if not self._receiver.running:
            logger.warning(
                f"Receiver exited early with code {self._receiver.process.returncode}"
            )

        self._enter(HarnessState.RUN_SENDER)
        self.runner.run_foreground(settings.sender_argv, env, timeout=settings.sender_timeout)

        self._enter(HarnessState.VERIFY_OUTPUTS)
        self.verifier.verify_all(output_path, settings.expected_markers)

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def _cleanup(self, failed: bool) -> tuple[list[CleanupFailed], str]:
        """Terminate the receiver and remove the server. Never raises."""
        self._set_state(HarnessState.CLEANUP)
        errors: list[CleanupFailed] = []
        server_logs = ""

        def best_effort(step: str, action: Callable[[], object]) -> object:
            try:
                result = action()
            except Exception as e:
                errors.append(CleanupFailed(step, e))
                return None
            if isinstance(result, CleanupFailed):
                errors.append(result)
                return None
            return result

        if self._receiver is not None:
            receiver = self._receiver
            best_effort("terminate_receiver", lambda: self.runner.terminate(receiver))

        # Grab the server's side of the story before it is removed
        if failed and self._server is not None:
            server_logs = best_effort(
                "server_logs", lambda: self.supervisor.logs(self.server_name)
            ) or ""

        if self.settings.keep_server:
            logger.info(f"Leaving {self.server_name} running")
        else:
            best_effort("stop_server", lambda: self.supervisor.stop(self.server_name))

        for failure in errors:
            logger.warning(f"Cleanup: {failure.message}")

        return errors, server_logs

    def _finalize_artifacts(
        self, outcome: RunOutcome, started_at: datetime, server_logs: str
    ) -> None:
        settings = self.settings
        keep = settings.keep_artifacts or (
            not outcome.succeeded and settings.keep_artifacts_on_failure
        )

        if keep:
            report = RunReport(
                run_id=self.run_id,
                started_at=started_at,
                finished_at=datetime.now(UTC),
                succeeded=outcome.succeeded,
                final_state=(outcome.failed_state or HarnessState.VERIFY_OUTPUTS).value,
                server_name=self.server_name,
                server_address=(
                    "{}:{}".format(*self.server_address) if self.server_address else None
                ),
                markers=list(settings.expected_markers),
                error=outcome.error.to_dict() if outcome.error else None,
                cleanup_errors=[f.message for f in outcome.cleanup_errors],
                receiver_output=outcome.receiver_output,
                server_logs=server_logs,
            )
            outcome.report_path = report.save(self._artifacts_dir)
            outcome.artifacts_dir = self._artifacts_dir
            logger.info(f"Artifacts kept in {self._artifacts_dir}")
            return

        try:
            shutil.rmtree(self._artifacts_dir)
        except OSError as e:
            failure = CleanupFailed("remove_artifacts", e)
            logger.warning(failure.message)
            outcome.cleanup_errors.append(failure)
