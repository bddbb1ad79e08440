"""Cancellation tokens with an optional overall deadline.

A single token is created per CLI invocation and handed to every blocking
step (HTTP calls, process spawns, polling waits). Steps check it between
units of work and size their own timeouts from the remaining deadline.
"""

from __future__ import annotations

import threading
import time

import structlog

from algorun.core.errors import CancelledError

logger = structlog.get_logger()


class CancellationToken:
    """Thread-safe cancellation signal carrying an optional deadline.

    Args:
        timeout: Seconds until the token expires on its own, or None for
            no deadline
        name: Label used in log events and error messages
    """

    def __init__(self, timeout: float | None = None, name: str = "operation"):
        self.name = name
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    @property
    def deadline(self) -> float | None:
        """Monotonic deadline, or None."""
        return self._deadline

    def cancel(self) -> None:
        """Signal cancellation to every waiter."""
        if not self._event.is_set():
            self._event.set()
            logger.info("cancellation_requested", operation=self.name)

    def is_cancelled(self) -> bool:
        """True once cancelled or past the deadline."""
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def clamp(self, timeout: float | None) -> float | None:
        """Return the smaller of ``timeout`` and the remaining deadline."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        if timeout is None:
            return remaining
        return min(timeout, remaining)

    def check(self) -> None:
        """Raise CancelledError if cancelled or expired."""
        if self._event.is_set():
            raise CancelledError(f"{self.name} was cancelled")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise CancelledError(f"{self.name} exceeded its deadline")

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``, waking early on cancellation.

        Returns:
            True if the token was cancelled during the wait
        """
        return self._event.wait(max(0.0, seconds))


def never_cancelled() -> CancellationToken:
    """Token with no deadline that is never cancelled unless asked."""
    return CancellationToken(timeout=None)
