"""Exclusive lock on an installation root.

Two invocations against the same root would race on the data directory
and the node processes, so the second one fails fast instead of waiting.
"""

from __future__ import annotations

import fcntl
import os
from pathlib import Path
from typing import IO

import structlog

from algorun.core.errors import LockError

logger = structlog.get_logger()


class InstallLock:
    """Non-blocking flock held for the duration of one operation.

    Args:
        lock_path: Lock file path (created if missing)
    """

    def __init__(self, lock_path: Path):
        self.lock_path = lock_path
        self._handle: IO[str] | None = None

    @property
    def held(self) -> bool:
        return self._handle is not None

    def acquire(self) -> None:
        """Take the lock.

        Raises:
            LockError: If another process holds it
        """
        if self._handle is not None:
            return

        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.lock_path, "a+")
        try:
            fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            handle.close()
            raise LockError(
                f"Another algorun operation is running against {self.lock_path.parent}",
                lock_path=self.lock_path,
            ) from e

        handle.seek(0)
        handle.truncate()
        handle.write(f"{os.getpid()}\n")
        handle.flush()
        self._handle = handle
        logger.debug("lock_acquired", path=str(self.lock_path))

    def release(self) -> None:
        """Release the lock if held."""
        if self._handle is None:
            return
        fcntl.flock(self._handle, fcntl.LOCK_UN)
        self._handle.close()
        self._handle = None
        logger.debug("lock_released", path=str(self.lock_path))

    def __enter__(self) -> InstallLock:
        self.acquire()
        return self

    def __exit__(self, *args: object) -> None:
        self.release()
