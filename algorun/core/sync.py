"""Wait for a freshly started node to begin advancing rounds."""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog

from algorun.core.cancellation import CancellationToken, never_cancelled
from algorun.core.config import SyncConfig
from algorun.core.errors import CancelledError, SyncTimeoutError

logger = structlog.get_logger()

StatusSource = Callable[[], int]


class SyncMonitor:
    """Poll a round counter until it moves past its starting value.

    Two wake sources compete: the poll tick and the timeout. The deadline
    is fixed when the wait begins. A tick scheduled at or before the
    deadline is polled, and progress seen on it is a success. When the next
    tick would land after the deadline the monitor sleeps out the remainder
    and fails; when polls run slow and the clock is already past the
    deadline it fails without polling again. Exactly one outcome is produced.
    """

    def __init__(
        self,
        config: SyncConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or SyncConfig()
        self._clock = clock

    def wait_for_progress(
        self,
        status_source: StatusSource,
        timeout: float | None = None,
        token: CancellationToken | None = None,
    ) -> int:
        """Block until the round counter advances.

        Args:
            status_source: Returns the current round; its exceptions propagate
                unchanged and end the wait immediately
            timeout: Seconds to wait, defaults to the configured timeout
            token: Cancellation token

        Returns:
            The first round observed past the starting round

        Raises:
            SyncTimeoutError: If no progress is seen before the timeout
            CancelledError: If the token fires during the wait
        """
        token = token or never_cancelled()
        timeout = self.config.timeout if timeout is None else timeout
        interval = self.config.poll_interval

        starting_round = status_source()
        last_round = starting_round
        deadline = self._clock() + timeout
        next_tick = self._clock() + interval
        polls = 0
        logger.info("sync_wait_started", starting_round=starting_round, timeout=timeout)

        while True:
            # A slow status source can push the schedule behind the clock;
            # once the deadline has passed no further poll is made.
            now = self._clock()
            if next_tick > deadline or now > deadline:
                if token.wait(deadline - now):
                    raise CancelledError("Sync wait was cancelled")
                raise SyncTimeoutError(
                    f"Node did not advance past round {starting_round} within {timeout}s",
                    starting_round=starting_round,
                    last_round=last_round,
                    timeout=timeout,
                )

            if token.wait(next_tick - self._clock()):
                raise CancelledError("Sync wait was cancelled")
            token.check()

            last_round = status_source()
            polls += 1
            if last_round > starting_round:
                logger.info(
                    "sync_progress_detected",
                    starting_round=starting_round,
                    round=last_round,
                    polls=polls,
                )
                return last_round

            logger.debug("sync_poll", round=last_round, polls=polls)
            next_tick += interval
