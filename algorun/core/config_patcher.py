"""In-place patching of the node and kmd JSON configuration files.

Only three keys are owned here:

- config.json       EndpointAddress -> 0.0.0.0:<algod port>
- kmd_config.json   address         -> 0.0.0.0:<kmd port>
- kmd_config.json   allowed_origins -> ["*"]

Everything else in either document is passed through untouched and in
its original order. Output is deterministic, so patching twice yields
byte-identical files.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import structlog

from algorun.core.endpoints import ALGOD_NET, KMD_NET, read_port
from algorun.core.errors import ConfigFormatError

logger = structlog.get_logger()

NODE_CONFIG = "config.json"
KMD_CONFIG = "kmd_config.json"
KMD_CONFIG_EXAMPLE = "kmd_config.json.example"
BIND_ALL = "0.0.0.0"


def load_document(path: Path) -> dict[str, Any]:
    """Read a JSON object without assuming its schema.

    Raises:
        ConfigFormatError: If the file is missing, not JSON, or not an object
    """
    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigFormatError(f"{path.name} not found in {path.parent}", path=path) from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ConfigFormatError(f"{path.name} is not valid JSON: {e}", path=path) from e
    except OSError as e:
        raise ConfigFormatError(f"Cannot read {path}: {e}", path=path) from e

    if not isinstance(data, dict):
        raise ConfigFormatError(
            f"{path.name} must hold a JSON object, got {type(data).__name__}", path=path
        )
    return data


def render_document(data: dict[str, Any]) -> str:
    return json.dumps(data, indent=2) + "\n"


def write_document(path: Path, data: dict[str, Any]) -> bool:
    """Atomically write a JSON document.

    Returns:
        False if the file already held identical content
    """
    content = render_document(data)
    if path.exists() and path.read_text(encoding="utf-8") == content:
        logger.debug("config_unchanged", path=str(path))
        return False

    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        tmp_path.write_text(content, encoding="utf-8")
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return True


def patch_node_config(data_dir: Path) -> dict[str, Any]:
    """Bind algod's REST endpoint to all interfaces on its current port."""
    port = read_port(data_dir / ALGOD_NET)
    config_path = data_dir / NODE_CONFIG
    config = load_document(config_path)

    config["EndpointAddress"] = f"{BIND_ALL}:{port}"

    changed = write_document(config_path, config)
    logger.info("node_config_patched", path=str(config_path), port=port, changed=changed)
    return config


def patch_kmd_config(kmd_dir: Path) -> dict[str, Any]:
    """Bind kmd to all interfaces and allow every origin.

    Starts from kmd_config.json when present, otherwise from the example
    file kmd writes on first start.
    """
    port = read_port(kmd_dir / KMD_NET)
    config_path = kmd_dir / KMD_CONFIG
    source = config_path if config_path.exists() else kmd_dir / KMD_CONFIG_EXAMPLE
    config = load_document(source)

    config["address"] = f"{BIND_ALL}:{port}"
    config["allowed_origins"] = ["*"]

    changed = write_document(config_path, config)
    logger.info("kmd_config_patched", path=str(config_path), port=port, changed=changed)
    return config


def patch_configs(data_dir: Path, kmd_dir: Path) -> None:
    """Patch both configuration files.

    Both documents are parsed and validated before either is written, so a
    malformed kmd config never leaves a half-patched installation.

    Raises:
        ConfigFormatError: If either document is not a JSON object
        PortDiscoveryError: If a port cannot be read from algod.net/kmd.net
    """
    read_port(data_dir / ALGOD_NET)
    read_port(kmd_dir / KMD_NET)
    load_document(data_dir / NODE_CONFIG)
    kmd_source = kmd_dir / KMD_CONFIG
    load_document(kmd_source if kmd_source.exists() else kmd_dir / KMD_CONFIG_EXAMPLE)

    patch_node_config(data_dir)
    patch_kmd_config(kmd_dir)
