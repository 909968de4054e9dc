"""
Readiness Poller - Wait until the server port accepts TCP connections.

A plain connect (no IRC handshake) is the liveness signal: the server
accepts sockets before it is fully ready, which is why the harness adds a
coarser settle delay after this check passes.

Refused, timed-out and unreachable connects are all OSError and all mean
"not yet". The budget is a fixed number of attempts with a fixed delay
between them; no delay follows the final attempt.
"""

from __future__ import annotations

import socket
import time
from typing import Callable

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from irc_harness.core.exceptions import ServiceUnavailable
from irc_harness.core.logging import get_logger

logger = get_logger("readiness")

Address = tuple[str, int]


def _tcp_connect(address: Address, timeout: float) -> None:
    with socket.create_connection(address, timeout=timeout):
        pass


class ReadinessPoller:
    """
    Poll an address with short-lived TCP connects.

    Usage:
        poller = ReadinessPoller()
        attempts = poller.wait_until_reachable(("localhost", 6667), 10, 1.0, 2.0)
    """

    def __init__(
        self,
        connect: Callable[[Address, float], None] = _tcp_connect,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._connect = connect
        self._sleep = sleep

    def wait_until_reachable(
        self,
        address: Address,
        max_attempts: int,
        attempt_timeout: float,
        inter_attempt_delay: float,
    ) -> int:
        """
        Block until `address` accepts a connection.

        Returns:
            The number of attempts made (1-based).

        Raises:
            ServiceUnavailable: after `max_attempts` failed attempts.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        host, port = address
        retrying = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_fixed(inter_attempt_delay),
            retry=retry_if_exception_type(OSError),
            sleep=self._sleep,
            before_sleep=self._log_retry(host, port, max_attempts),
        )

        try:
            for attempt in retrying:
                with attempt:
                    self._connect(address, attempt_timeout)
        except RetryError as e:
            attempts = e.last_attempt.attempt_number
            logger.error(f"{host}:{port} did not come up after {attempts} attempt(s)")
            raise ServiceUnavailable(address, attempts) from e.last_attempt.exception()

        attempts = attempt.retry_state.attempt_number
        logger.info(f"{host}:{port} reachable after {attempts} attempt(s)")
        return attempts

    @staticmethod
    def _log_retry(host: str, port: int, max_attempts: int):
        def before_sleep(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            logger.debug(
                f"{host}:{port} not reachable "
                f"(attempt {state.attempt_number}/{max_attempts}): {error}"
            )

        return before_sleep
