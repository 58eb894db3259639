"""Readiness polling for bootstrap steps.

This module provides a blocking wait-until-ready primitive used before any
operation that needs a process to be accepting requests: the Vault HTTP API
and the Oracle listener.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from ..errors import readiness_timeout
from ..shared.logging import get_logger

logger = get_logger(__name__)

Probe = Callable[[], bool]
AttemptCallback = Callable[[int, "int | None", "str | None"], None]


@dataclass
class ReadinessResult:
    """Result of a readiness wait."""

    ready: bool
    attempts: int = 0
    elapsed_seconds: float = 0.0
    last_error: str | None = None


def wait_until_ready(
    probe: Probe,
    interval: float,
    max_attempts: int | None = None,
    on_attempt: AttemptCallback | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ReadinessResult:
    """Invoke probe at a fixed interval until it returns True.

    An exception raised by the probe (e.g., connection refused while the
    process is still starting) counts as "not ready".

    Args:
        probe: Zero-argument callable returning True once ready.
        interval: Seconds to sleep between attempts.
        max_attempts: Attempt bound; None waits forever.
        on_attempt: Optional callback called with (attempt, max_attempts, error)
                    after each failed attempt, for progress reporting.
        sleep: Sleep function, injectable for tests.

    Returns:
        ReadinessResult; ready is False only when max_attempts ran out.
    """
    start = datetime.now()
    last_error: str | None = None
    attempt = 0

    while max_attempts is None or attempt < max_attempts:
        attempt += 1
        try:
            if probe():
                elapsed = (datetime.now() - start).total_seconds()
                return ReadinessResult(
                    ready=True,
                    attempts=attempt,
                    elapsed_seconds=elapsed,
                    last_error=last_error,
                )
            last_error = "not ready"
        except Exception as e:
            last_error = str(e) or type(e).__name__

        if on_attempt:
            on_attempt(attempt, max_attempts, last_error)

        # No sleep after the final attempt
        if max_attempts is None or attempt < max_attempts:
            sleep(interval)

    elapsed = (datetime.now() - start).total_seconds()
    return ReadinessResult(
        ready=False,
        attempts=attempt,
        elapsed_seconds=elapsed,
        last_error=last_error,
    )


class ReadinessPoller:
    """Poll a named service until ready, raising on timeout."""

    def __init__(
        self,
        interval_seconds: float = 5.0,
        max_attempts: int | None = 60,
        on_attempt: AttemptCallback | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize readiness poller.

        Args:
            interval_seconds: Seconds between attempts.
            max_attempts: Maximum number of attempts; None or 0 waits forever.
            on_attempt: Optional progress callback.
            sleep: Sleep function, injectable for tests.
        """
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts or None
        self.on_attempt = on_attempt
        self.sleep = sleep

    def wait(self, target: str, probe: Probe) -> ReadinessResult:
        """Block until probe succeeds.

        Args:
            target: Service name used in logs and errors.
            probe: Readiness probe.

        Returns:
            ReadinessResult for the successful wait.

        Raises:
            ReadinessTimeout: If the probe never succeeded within max_attempts.
        """
        logger.debug("readiness_wait_started", target=target, max_attempts=self.max_attempts)
        result = wait_until_ready(
            probe,
            interval=self.interval_seconds,
            max_attempts=self.max_attempts,
            on_attempt=self.on_attempt,
            sleep=self.sleep,
        )
        if not result.ready:
            logger.error(
                "readiness_timeout",
                target=target,
                attempts=result.attempts,
                last_error=result.last_error,
            )
            raise readiness_timeout(target, result.attempts, result.last_error)

        logger.info(
            "service_ready",
            target=target,
            attempts=result.attempts,
            elapsed_seconds=round(result.elapsed_seconds, 2),
        )
        return result
