"""Core functionality for algorun.

This module provides the pieces the install/update pipeline is built from:
- Configuration management
- Type definitions and the error taxonomy
- Release resolution and archive download
- Archive installation and config patching
- Node process control, sync monitoring and catchup
"""

from algorun.core.errors import (
    AlgorunError,
    ArchiveError,
    CancelledError,
    CatchpointFetchError,
    ConfigFormatError,
    DownloadError,
    IncompleteArchiveError,
    KmdDirectoryError,
    LockError,
    NotFoundError,
    PortDiscoveryError,
    ProcessError,
    StatusError,
    SyncTimeoutError,
    UnsafeArchiveError,
)
from algorun.core.types import (
    KmdEndpoint,
    NodeEndpoint,
    ProcessState,
    ResolvedVersion,
)

__all__ = [
    # Types
    "ResolvedVersion",
    "NodeEndpoint",
    "KmdEndpoint",
    "ProcessState",
    # Errors
    "AlgorunError",
    "NotFoundError",
    "DownloadError",
    "ArchiveError",
    "UnsafeArchiveError",
    "IncompleteArchiveError",
    "ConfigFormatError",
    "PortDiscoveryError",
    "KmdDirectoryError",
    "ProcessError",
    "StatusError",
    "SyncTimeoutError",
    "CatchpointFetchError",
    "LockError",
    "CancelledError",
]
