"""Release archive extraction and installation into the live directories.

Archive layout (relative to the staging directory):
    bin/algod, bin/kmd, bin/goal        # copied to <base>/bin
    genesis/mainnet/genesis.json        # seeded as <data>/genesis.json
    data/config.json.example            # seeded as <data>/config.json
"""

from __future__ import annotations

import os
import shutil
import tarfile
from pathlib import Path

import structlog

from algorun.core.errors import ArchiveError, IncompleteArchiveError, UnsafeArchiveError

logger = structlog.get_logger()

REQUIRED_BINARIES = ("algod", "kmd", "goal")

# Staging-relative source -> data-directory file name
DATA_SEEDS = {
    Path("genesis") / "mainnet" / "genesis.json": "genesis.json",
    Path("data") / "config.json.example": "config.json",
}


def _inside(root: str, path: str) -> bool:
    return os.path.commonpath([root, path]) == root


def check_member(member: tarfile.TarInfo, root: Path) -> None:
    """Reject a member whose path or link target leaves ``root``.

    Raises:
        UnsafeArchiveError: If the member escapes the staging root
    """
    root_str = os.path.normpath(os.path.abspath(root))
    target = os.path.normpath(os.path.join(root_str, member.name))

    if os.path.isabs(member.name) or not _inside(root_str, target):
        raise UnsafeArchiveError(
            f"Archive entry {member.name!r} escapes the staging directory",
            member=member.name,
        )

    if member.issym() or member.islnk():
        base = os.path.dirname(target) if member.issym() else root_str
        link_target = os.path.normpath(os.path.join(base, member.linkname))
        if os.path.isabs(member.linkname) or not _inside(root_str, link_target):
            raise UnsafeArchiveError(
                f"Archive link {member.name!r} points outside the staging directory",
                member=member.name,
            )


class ArchiveInstaller:
    """Unpack a release tarball and install its files."""

    def extract(self, archive_path: Path, staging_dir: Path) -> Path:
        """Extract a gzip tarball into a freshly cleared staging directory.

        Every entry is checked before anything is written, so an unsafe
        archive leaves the previous staging contents untouched.

        Args:
            archive_path: Downloaded .tar.gz
            staging_dir: Extraction directory

        Returns:
            The staging directory

        Raises:
            UnsafeArchiveError: If an entry escapes the staging directory
            ArchiveError: If the archive cannot be read
        """
        try:
            with tarfile.open(archive_path, "r:gz") as tar:
                members = tar.getmembers()
                for member in members:
                    check_member(member, staging_dir)

                if staging_dir.exists():
                    shutil.rmtree(staging_dir)
                staging_dir.mkdir(parents=True)

                tar.extractall(staging_dir, members=members, filter="data")
        except tarfile.FilterError as e:
            name = e.tarinfo.name if e.tarinfo is not None else "?"
            raise UnsafeArchiveError(f"Archive entry {name!r} rejected: {e}", member=name) from e
        except (tarfile.TarError, EOFError, OSError) as e:
            raise ArchiveError(f"Cannot extract {archive_path.name}: {e}") from e

        logger.info("archive_extracted", archive=str(archive_path), entries=len(members))
        return staging_dir

    def install_binaries(self, staging_dir: Path, bin_dir: Path) -> list[Path]:
        """Copy algod, kmd and goal from the staging bin folder.

        Nothing is copied unless all three are present.

        Raises:
            IncompleteArchiveError: If any required binary is missing
        """
        source_dir = staging_dir / "bin"
        missing = [name for name in REQUIRED_BINARIES if not (source_dir / name).is_file()]
        if missing:
            raise IncompleteArchiveError(
                f"Release archive is missing binaries: {', '.join(missing)}",
                missing=missing,
            )

        bin_dir.mkdir(parents=True, exist_ok=True)
        installed = []
        for name in REQUIRED_BINARIES:
            dest = bin_dir / name
            tmp = dest.with_name(f".{name}.tmp")
            shutil.copy2(source_dir / name, tmp)
            os.replace(tmp, dest)
            installed.append(dest)

        logger.info("binaries_installed", bin_dir=str(bin_dir), binaries=list(REQUIRED_BINARIES))
        return installed

    def seed_data_dir(self, staging_dir: Path, data_dir: Path, overwrite: bool) -> list[Path]:
        """Copy the genesis file and example config into the data directory.

        Args:
            staging_dir: Extraction directory
            data_dir: Node data directory
            overwrite: Replace existing files (create) or keep them (update)

        Returns:
            Files written

        Raises:
            IncompleteArchiveError: If a seed file is missing from the archive
        """
        missing = [str(src) for src in DATA_SEEDS if not (staging_dir / src).is_file()]
        if missing:
            raise IncompleteArchiveError(
                f"Release archive is missing seed files: {', '.join(missing)}",
                missing=missing,
            )

        data_dir.mkdir(parents=True, exist_ok=True)
        written = []
        for src, name in DATA_SEEDS.items():
            dest = data_dir / name
            if dest.exists() and not overwrite:
                logger.info("seed_preserved", path=str(dest))
                continue
            shutil.copyfile(staging_dir / src, dest)
            written.append(dest)

        logger.debug("data_dir_seeded", data_dir=str(data_dir), written=[p.name for p in written])
        return written
