"""Persistent record of the release currently installed.

Written with an atomic replace after a create/update finishes, so an
interrupted run leaves the previous record in place.
"""

from __future__ import annotations

import json
import os
from datetime import UTC, datetime
from pathlib import Path

import structlog
from pydantic import ValidationError

from algorun.core.types import InstallRecord, Operation, ResolvedVersion

logger = structlog.get_logger()


def save_record(state_file: Path, version: ResolvedVersion, operation: Operation) -> InstallRecord:
    """Record ``version`` as installed by ``operation``."""
    record = InstallRecord(
        raw_tag=version.raw_tag,
        semver=version.semver,
        channel=version.channel,
        operation=operation,
        installed_at=datetime.now(UTC),
    )

    state_file.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = state_file.with_suffix(".json.tmp")
    tmp_path.write_text(json.dumps(record.model_dump(mode="json"), indent=2))
    os.replace(tmp_path, state_file)

    logger.debug("install_record_saved", path=str(state_file), tag=version.raw_tag)
    return record


def load_record(state_file: Path) -> InstallRecord | None:
    """Load the install record, or None if absent or unreadable."""
    if not state_file.exists():
        return None

    try:
        return InstallRecord(**json.loads(state_file.read_text()))
    except (json.JSONDecodeError, OSError, TypeError, ValidationError) as e:
        logger.warning("install_record_unreadable", path=str(state_file), error=str(e))
        return None
