"""Retry policy for acknowledged sends.

ANT acknowledged data either gets through within the transport's own
per-attempt timeout or it does not, so the policy is a fixed attempt ceiling
with a fixed pause between attempts. Time is injected so the policy can be
exercised without sleeping.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from antz_discovery.protocol.constants import (
    MESSAGE_TIMEOUT_MS,
    REQUEST_BACKOFF_SECONDS,
    REQUEST_MAX_ATTEMPTS,
)


class RetryPolicy:
    """Bounded retry with a fixed backoff between attempts."""

    def __init__(
        self,
        max_attempts: int = REQUEST_MAX_ATTEMPTS,
        backoff_seconds: float = REQUEST_BACKOFF_SECONDS,
        attempt_timeout_ms: int = MESSAGE_TIMEOUT_MS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize retry policy.

        Args:
            max_attempts: Hard ceiling on send attempts (default: 5)
            backoff_seconds: Pause after each failed attempt (default: 0.1s)
            attempt_timeout_ms: Per-attempt acknowledgement timeout (default: 1000ms)
            sleep: Sleep function, replaced in tests
        """
        if max_attempts < 1:
            msg = "max_attempts must be at least 1"
            raise ValueError(msg)
        self.max_attempts = max_attempts
        self.backoff_seconds = max(0.0, backoff_seconds)
        self.attempt_timeout_ms = attempt_timeout_ms
        self._sleep = sleep

    def get_delay(self, attempt: int) -> float:
        """Delay after failed ``attempt`` (0-indexed); none after the last one."""
        return self.backoff_seconds if attempt < self.max_attempts - 1 else 0.0

    def attempts(self) -> range:
        return range(self.max_attempts)

    def backoff(self, attempt: int) -> None:
        """Sleep after a failed attempt."""
        delay = self.get_delay(attempt)
        if delay > 0:
            self._sleep(delay)

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(max_attempts={self.max_attempts}, "
            f"backoff={self.backoff_seconds}s, "
            f"attempt_timeout={self.attempt_timeout_ms}ms)"
        )
