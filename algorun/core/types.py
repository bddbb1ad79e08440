"""Core type definitions for algorun."""

from __future__ import annotations

import platform
import re
import sys
from datetime import datetime
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from algorun.core.errors import NotFoundError

_VERSION_RE = re.compile(r"\d+\.\d+\.\d+")
_CHANNEL_RE = re.compile(r"-(.*)")

# platform.machine() values mapped to release archive architecture names
_ARCH_NAMES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
}


class ProcessState(StrEnum):
    """Lifecycle of the node and kmd processes."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class Operation(StrEnum):
    """Installation operations recorded in the state file."""
    CREATE = "create"
    UPDATE = "update"


def host_os() -> str:
    """Operating system name as used in release archive names."""
    if sys.platform.startswith("linux"):
        return "linux"
    return sys.platform


def host_arch() -> str:
    """CPU architecture name as used in release archive names."""
    machine = platform.machine().lower()
    return _ARCH_NAMES.get(machine, machine)


class ResolvedVersion(BaseModel):
    """A release tag resolved once per run.

    Every step of an operation receives this same value so that the
    archive fetched and the binaries installed always belong to one release.
    """
    channel: str = Field(..., description="Release channel, e.g. stable")
    semver: str = Field(..., description="Version number, e.g. 3.16.2")
    raw_tag: str = Field(..., description="Tag as published, e.g. v3.16.2-stable")

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_tag(cls, tag: str) -> ResolvedVersion:
        """Split a release tag into version and channel.

        Args:
            tag: Release tag such as ``v3.16.2-stable``

        Returns:
            Resolved version

        Raises:
            NotFoundError: If the tag carries no version or channel
        """
        version = _VERSION_RE.search(tag)
        channel = _CHANNEL_RE.search(tag)
        if version is None or channel is None or not channel.group(1):
            raise NotFoundError(f"Release tag {tag!r} has no version/channel", channel=None)
        return cls(channel=channel.group(1), semver=version.group(0), raw_tag=tag)

    def tarball_name(self, os_name: str | None = None, arch: str | None = None) -> str:
        """Release archive file name for a platform (defaults to this host)."""
        return (
            f"node_{self.channel}_{os_name or host_os()}-{arch or host_arch()}"
            f"_{self.semver}.tar.gz"
        )

    def tarball_url(
        self,
        releases_base_url: str,
        os_name: str | None = None,
        arch: str | None = None,
    ) -> str:
        """URL of the release archive under its channel path."""
        base = releases_base_url.rstrip("/")
        return f"{base}/channel/{self.channel}/{self.tarball_name(os_name, arch)}"


class NodeEndpoint(BaseModel):
    """algod REST endpoint discovered from the data directory."""
    address: str = Field(..., description="host:port from algod.net")
    token: str = Field(..., description="API token from algod.token")

    model_config = ConfigDict(frozen=True)

    @property
    def port(self) -> int:
        return int(self.address.rsplit(":", 1)[-1])

    @property
    def url(self) -> str:
        """Base URL for local requests; bind-all hosts map to loopback."""
        host = self.address.rsplit(":", 1)[0]
        if host in ("", "0.0.0.0", "[::]", "::"):
            host = "127.0.0.1"
        return f"http://{host}:{self.port}"


class KmdEndpoint(BaseModel):
    """kmd endpoint discovered from the kmd-* directory."""
    address: str = Field(..., description="host:port from kmd.net")
    directory: Path = Field(..., description="kmd-* directory inside the data directory")

    model_config = ConfigDict(frozen=True)

    @property
    def port(self) -> int:
        return int(self.address.rsplit(":", 1)[-1])


class InstallRecord(BaseModel):
    """Last successfully installed release."""
    raw_tag: str
    semver: str
    channel: str
    operation: Operation
    installed_at: datetime

    model_config = ConfigDict(extra="allow")
