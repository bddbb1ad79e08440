"""Endpoint discovery from files the node writes after its first start.

``algod.net``/``algod.token`` appear in the data directory and
``kmd.net`` in a ``kmd-<version>`` sub-directory only once the processes
have initialised it, so these readers must run after ``start``.
"""

from __future__ import annotations

from pathlib import Path

import structlog

from algorun.core.errors import KmdDirectoryError, PortDiscoveryError
from algorun.core.types import KmdEndpoint, NodeEndpoint

logger = structlog.get_logger()

ALGOD_NET = "algod.net"
ALGOD_TOKEN = "algod.token"
KMD_NET = "kmd.net"
KMD_DIR_PATTERN = "kmd-*"


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8").strip()
    except FileNotFoundError as e:
        raise PortDiscoveryError(f"{path.name} not found in {path.parent}", path=path) from e
    except OSError as e:
        raise PortDiscoveryError(f"Cannot read {path}: {e}", path=path) from e


def read_port(net_file: Path) -> int:
    """Parse the port from a ``host:port`` runtime file.

    Raises:
        PortDiscoveryError: If the file is missing or holds no valid port
    """
    address = _read_text(net_file)
    port_str = address.rsplit(":", 1)[-1].strip()
    if ":" not in address or not port_str.isdigit() or not 0 < int(port_str) < 65536:
        raise PortDiscoveryError(
            f"No valid port in {net_file.name}: {address!r}", path=net_file
        )
    return int(port_str)


def find_kmd_dir(data_dir: Path) -> Path:
    """Locate the single kmd-* directory in the data directory.

    Raises:
        PortDiscoveryError: If no kmd directory exists yet
        KmdDirectoryError: If more than one matches
    """
    matches = sorted(p for p in data_dir.glob(KMD_DIR_PATTERN) if p.is_dir())
    if not matches:
        raise PortDiscoveryError(f"No {KMD_DIR_PATTERN} directory in {data_dir}", path=data_dir)
    if len(matches) > 1:
        raise KmdDirectoryError(
            f"Multiple kmd directories in {data_dir}: {', '.join(p.name for p in matches)}",
            path=data_dir,
        )
    return matches[0]


def read_node_endpoint(data_dir: Path) -> NodeEndpoint:
    """Read the algod address and API token."""
    net_file = data_dir / ALGOD_NET
    read_port(net_file)
    endpoint = NodeEndpoint(
        address=_read_text(net_file),
        token=_read_text(data_dir / ALGOD_TOKEN),
    )
    logger.debug("node_endpoint_discovered", address=endpoint.address)
    return endpoint


def read_kmd_endpoint(data_dir: Path) -> KmdEndpoint:
    """Read the kmd address from its generated directory."""
    kmd_dir = find_kmd_dir(data_dir)
    net_file = kmd_dir / KMD_NET
    read_port(net_file)
    endpoint = KmdEndpoint(address=_read_text(net_file), directory=kmd_dir)
    logger.debug("kmd_endpoint_discovered", address=endpoint.address, directory=str(kmd_dir))
    return endpoint
