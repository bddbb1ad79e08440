"""Install, update and bootstrap pipelines.

Each operation is a strict sequence; every step depends on filesystem or
process state left by the one before, so nothing runs concurrently.

create:  resolve -> fetch -> extract -> stop -> wipe data -> install bin
         -> seed data (overwrite) -> start -> discover endpoints
         -> patch configs -> wait for progress -> catchup (best effort)
update:  resolve -> fetch -> extract -> stop -> install bin
         -> seed data (keep existing) -> start

Resolve, fetch and extract only touch the download cache and staging
directory, so a failure there leaves the live installation as it was.
"""

from __future__ import annotations

import shutil
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx
import structlog

from algorun import __version__
from algorun.core.algod import AlgodClient
from algorun.core.cancellation import CancellationToken
from algorun.core.catchup import CatchupTrigger
from algorun.core.config import AppConfig
from algorun.core.config_patcher import patch_configs
from algorun.core.endpoints import read_kmd_endpoint, read_node_endpoint
from algorun.core.errors import AlgorunError, CatchpointFetchError, ProcessError
from algorun.core.fetcher import ArchiveFetcher, ProgressCallback
from algorun.core.install_state import load_record, save_record
from algorun.core.installer import ArchiveInstaller
from algorun.core.lock import InstallLock
from algorun.core.process import CommandResult, CommandRunner, LineCallback, NodeController
from algorun.core.releases import VersionResolver
from algorun.core.sync import SyncMonitor
from algorun.core.types import InstallRecord, NodeEndpoint, Operation, ResolvedVersion

logger = structlog.get_logger()

DEFAULT_RELEASE = "stable"


@dataclass
class CreateResult:
    """Outcome of a create operation."""

    version: ResolvedVersion
    archive: Path
    node: NodeEndpoint
    synced_round: int
    catchpoint: str | None = None
    catchup_error: AlgorunError | None = None


@dataclass
class UpdateResult:
    """Outcome of an update operation."""

    version: ResolvedVersion
    archive: Path


class Orchestrator:
    """Drive one installation root through create/update/catchup.

    All collaborators are built from a single AppConfig constructed per
    invocation; nothing is shared between instances.
    """

    def __init__(
        self,
        config: AppConfig,
        client: httpx.Client | None = None,
        runner: CommandRunner | None = None,
        token: CancellationToken | None = None,
        on_line: LineCallback | None = None,
        progress: ProgressCallback | None = None,
        monitor: SyncMonitor | None = None,
        algod_factory: Callable[[NodeEndpoint, httpx.Client], AlgodClient] | None = None,
    ):
        """Initialize orchestrator.

        Args:
            config: Application configuration
            client: HTTP client, created (and owned) if None
            runner: Process runner for the control binary
            token: Cancellation token bounding every step
            on_line: Receives control-binary output lines
            progress: Receives download progress ticks
            monitor: Sync monitor, built from config if None
            algod_factory: Builds the status client from a discovered endpoint
        """
        self.config = config
        self.paths = config.paths
        self.token = token or CancellationToken(config.operation_timeout)
        self.progress = progress
        self._owns_client = client is None
        self.client = client or httpx.Client(
            timeout=config.release.timeout,
            verify=config.release.verify_ssl,
            follow_redirects=True,
            headers={"User-Agent": f"algorun/{__version__}"},
        )

        self.resolver = VersionResolver(self.client, config.release)
        self.fetcher = ArchiveFetcher(self.client, config.fetch, timeout=config.release.timeout)
        self.installer = ArchiveInstaller()
        self.controller = NodeController(
            self.paths.goal_path,
            self.paths.data_dir,
            runner=runner,
            on_line=on_line,
            token=self.token,
        )
        self.monitor = monitor or SyncMonitor(config.sync)
        self.catchup_trigger = CatchupTrigger(self.client, self.controller, config.release)
        self._algod_factory = algod_factory or AlgodClient

    def lock(self) -> InstallLock:
        return InstallLock(self.paths.lock_file)

    def prepare_release(self, release: str, force_download: bool) -> tuple[ResolvedVersion, Path]:
        """Resolve, fetch and extract a release into the staging directory.

        Returns:
            The resolved version and the local archive path
        """
        version = self.resolver.resolve(release, self.token)
        url = version.tarball_url(self.config.release.releases_base_url)
        archive = self.fetcher.fetch(
            url,
            self.paths.downloads_dir,
            force=force_download,
            token=self.token,
            progress=self.progress,
        )
        self.installer.extract(archive, self.paths.temp_dir)
        return version, archive

    def create(self, release: str = DEFAULT_RELEASE, force_download: bool = False) -> CreateResult:
        """Install a fresh node, wait for it to advance, then start catchup.

        The data directory is destroyed and re-seeded. A catchup failure is
        reported on the result rather than raised, since the node itself is
        already installed and running by then.
        """
        with self.lock():
            self.paths.ensure()
            version, archive = self.prepare_release(release, force_download)
            logger.info("create_started", tag=version.raw_tag, root=str(self.paths.root))

            self.controller.stop()
            data_dir = self.paths.data_dir
            if data_dir.exists():
                shutil.rmtree(data_dir)
            data_dir.mkdir(parents=True)

            self.installer.install_binaries(self.paths.temp_dir, self.paths.bin_dir)
            self.installer.seed_data_dir(self.paths.temp_dir, data_dir, overwrite=True)

            self.controller.start()
            node = read_node_endpoint(data_dir)
            kmd = read_kmd_endpoint(data_dir)
            patch_configs(data_dir, kmd.directory)

            algod = self._algod_factory(node, self.client)
            synced_round = self.monitor.wait_for_progress(
                lambda: algod.last_round(self.token), token=self.token
            )
            save_record(self.paths.state_file, version, Operation.CREATE)

            result = CreateResult(
                version=version, archive=archive, node=node, synced_round=synced_round
            )
            try:
                result.catchpoint = self.catchup_trigger.trigger_catchup(self.token)
            except (CatchpointFetchError, ProcessError) as e:
                logger.error("catchup_failed", error=str(e))
                result.catchup_error = e

            logger.info("create_complete", tag=version.raw_tag, catchpoint=result.catchpoint)
            return result

    def update(self, release: str = DEFAULT_RELEASE, force_download: bool = False) -> UpdateResult:
        """Replace the binaries and restart, keeping the data directory."""
        with self.lock():
            self.paths.ensure()
            version, archive = self.prepare_release(release, force_download)
            logger.info("update_started", tag=version.raw_tag, root=str(self.paths.root))

            self.controller.stop()
            self.installer.install_binaries(self.paths.temp_dir, self.paths.bin_dir)
            self.installer.seed_data_dir(self.paths.temp_dir, self.paths.data_dir, overwrite=False)
            self.controller.start()
            save_record(self.paths.state_file, version, Operation.UPDATE)

            logger.info("update_complete", tag=version.raw_tag)
            return UpdateResult(version=version, archive=archive)

    def catchup(self) -> str:
        """Start a catchup on the running node.

        Returns:
            The catchpoint label used
        """
        with self.lock():
            return self.catchup_trigger.trigger_catchup(self.token)

    def start(self) -> None:
        with self.lock():
            self.controller.start()

    def stop(self) -> None:
        with self.lock():
            self.controller.stop()

    def status(self) -> CommandResult:
        return self.controller.status()

    def goal(self, args: list[str]) -> CommandResult:
        """Pass arbitrary arguments to goal with the managed data directory."""
        return self.controller.goal(*args)

    def installed(self) -> InstallRecord | None:
        return load_record(self.paths.state_file)

    def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> Orchestrator:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
