"""Error taxonomy for algorun operations.

Every failure raised by the install/update pipeline derives from
AlgorunError so the CLI layer can report it with the operation name and
exit non-zero. No step retries on failure.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path


class AlgorunError(Exception):
    """Base class for all algorun failures."""


class NotFoundError(AlgorunError):
    """Raised when no release tag matches the requested channel.

    Attributes:
        channel: The channel substring that was searched for
    """

    def __init__(self, message: str, *, channel: str | None = None):
        self.channel = channel
        super().__init__(message)


class DownloadError(AlgorunError):
    """Raised on a non-2xx response or transport failure while downloading.

    Attributes:
        url: URL being fetched
        status_code: HTTP status code, if a response was received
    """

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
    ):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class ArchiveError(AlgorunError):
    """Raised when a release archive cannot be read or installed."""


class UnsafeArchiveError(ArchiveError):
    """Raised when an archive member would escape the staging directory.

    Attributes:
        member: Name of the offending archive member
    """

    def __init__(self, message: str, *, member: str):
        self.member = member
        super().__init__(message)


class IncompleteArchiveError(ArchiveError):
    """Raised when files required from the archive are missing.

    Attributes:
        missing: Names of the missing files
    """

    def __init__(self, message: str, *, missing: Sequence[str] = ()):
        self.missing = list(missing)
        super().__init__(message)


class ConfigFormatError(AlgorunError):
    """Raised when a node or kmd configuration file is not a JSON object.

    Attributes:
        path: Configuration file that failed to parse
    """

    def __init__(self, message: str, *, path: Path | None = None):
        self.path = path
        super().__init__(message)


class PortDiscoveryError(AlgorunError):
    """Raised when an endpoint cannot be read from the node's runtime files.

    Attributes:
        path: The runtime file (or directory) that was inspected
    """

    def __init__(self, message: str, *, path: Path | None = None):
        self.path = path
        super().__init__(message)


class KmdDirectoryError(PortDiscoveryError):
    """Raised when more than one kmd-* directory exists in the data directory."""


class ProcessError(AlgorunError):
    """Raised when the control binary exits non-zero or cannot be spawned.

    Attributes:
        argv: Command line that was executed
        returncode: Exit status, or None if the process never ran
        output: Combined stdout/stderr captured from the process
    """

    def __init__(
        self,
        message: str,
        *,
        argv: Sequence[str] = (),
        returncode: int | None = None,
        output: str = "",
    ):
        self.argv = list(argv)
        self.returncode = returncode
        self.output = output
        super().__init__(message)


class SyncTimeoutError(AlgorunError):
    """Raised when the node's round counter does not advance in time.

    Attributes:
        starting_round: Round reported when the wait began
        last_round: Most recent round observed
        timeout: Timeout in seconds that elapsed
    """

    def __init__(
        self,
        message: str,
        *,
        starting_round: int,
        last_round: int,
        timeout: float,
    ):
        self.starting_round = starting_round
        self.last_round = last_round
        self.timeout = timeout
        super().__init__(message)


class StatusError(AlgorunError):
    """Raised when the node's status endpoint fails or returns garbage.

    Attributes:
        url: Status URL that was queried
        status_code: HTTP status code, if a response was received
    """

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
    ):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class CatchpointFetchError(AlgorunError):
    """Raised when the catchpoint label cannot be fetched."""


class LockError(AlgorunError):
    """Raised when another invocation holds the installation lock.

    Attributes:
        lock_path: Path of the lock file
    """

    def __init__(self, message: str, *, lock_path: Path):
        self.lock_path = lock_path
        super().__init__(message)


class CancelledError(AlgorunError):
    """Raised when an operation is cancelled or its deadline passes."""
