"""Node lifecycle commands: create, update, catchup, start, stop, status, goal."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click
import structlog
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from algorun.core.config import AppConfig
from algorun.core.errors import AlgorunError
from algorun.core.fetcher import ProgressCallback
from algorun.core.orchestrator import DEFAULT_RELEASE, Orchestrator

logger = structlog.get_logger()


def _get_context_objects(ctx: click.Context) -> tuple[AppConfig, Console, bool, bool]:
    """Extract common context objects."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]
    verbose: bool = ctx.obj["verbose"]
    debug: bool = ctx.obj["debug"]
    return config, console, verbose, debug


class _DownloadProgress:
    """Rich progress bar fed by the fetcher's ticker thread."""

    def __init__(self, console: Console):
        self.progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeElapsedColumn(),
            console=console,
        )
        self._task: TaskID | None = None

    def __call__(self, done: int, total: int | None) -> None:
        if self._task is None:
            self.progress.start()
            self._task = self.progress.add_task("Downloading release tarball", total=total)
        self.progress.update(self._task, completed=done, total=total)

    def close(self) -> None:
        if self._task is not None:
            self.progress.stop()


@contextmanager
def _orchestrator(
    ctx: click.Context, base_dir: Path | None = None, with_progress: bool = False
) -> Iterator[Orchestrator]:
    """Build an orchestrator wired to the console."""
    config, console, _, _ = _get_context_objects(ctx)
    if base_dir is not None:
        config = config.model_copy(update={"base_dir": base_dir})

    progress = _DownloadProgress(console) if with_progress else None
    callback: ProgressCallback | None = progress

    def echo(line: str) -> None:
        console.print(line, markup=False, highlight=False)

    try:
        with Orchestrator(config, on_line=echo, progress=callback) as orchestrator:
            yield orchestrator
    finally:
        if progress is not None:
            progress.close()


def _fail(operation: str, error: AlgorunError) -> click.ClickException:
    logger.debug("operation_failed", operation=operation, error_type=type(error).__name__)
    return click.ClickException(f"{operation} failed: {error}")


@click.command()
@click.option(
    "--base-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Installation root (overrides the global option)",
)
@click.option("--force-download", is_flag=True, help="Re-download the release tarball")
@click.argument("release", required=False, default=DEFAULT_RELEASE)
@click.pass_context
def create(ctx: click.Context, base_dir: Path | None, force_download: bool, release: str) -> None:
    """Install a fresh node from RELEASE and start catching up.

    RELEASE is a channel substring matched against published release tags
    (default: stable). The data directory is wiped and re-seeded.
    """
    _, console, _, _ = _get_context_objects(ctx)

    try:
        with _orchestrator(ctx, base_dir, with_progress=True) as orchestrator:
            result = orchestrator.create(release, force_download)
    except AlgorunError as e:
        raise _fail("create", e) from e

    console.print(
        f"[green]Installed {result.version.raw_tag}; node advanced to round "
        f"{result.synced_round}[/green]"
    )
    if result.catchup_error is not None:
        console.print(f"[yellow]Warning: catchup not started: {result.catchup_error}[/yellow]")
    else:
        console.print("[green]Node is now catching up to mainnet![/green]")


@click.command()
@click.option("--force-download", is_flag=True, help="Re-download the release tarball")
@click.argument("release", required=False, default=DEFAULT_RELEASE)
@click.pass_context
def update(ctx: click.Context, force_download: bool, release: str) -> None:
    """Replace the node binaries with RELEASE and restart.

    The data directory, including any customised config.json, is kept.
    """
    _, console, _, _ = _get_context_objects(ctx)

    try:
        with _orchestrator(ctx, with_progress=True) as orchestrator:
            result = orchestrator.update(release, force_download)
    except AlgorunError as e:
        raise _fail("update", e) from e

    console.print(f"[green]Updated to {result.version.raw_tag}[/green]")


@click.command()
@click.pass_context
def catchup(ctx: click.Context) -> None:
    """Fast-catchup the node to the latest mainnet catchpoint."""
    _, console, _, _ = _get_context_objects(ctx)

    try:
        with _orchestrator(ctx) as orchestrator:
            label = orchestrator.catchup()
    except AlgorunError as e:
        raise _fail("catchup", e) from e

    console.print(f"[green]Catching up to {label}[/green]")


@click.command()
@click.pass_context
def start(ctx: click.Context) -> None:
    """Start algod and kmd."""
    try:
        with _orchestrator(ctx) as orchestrator:
            orchestrator.start()
    except AlgorunError as e:
        raise _fail("start", e) from e


@click.command()
@click.pass_context
def stop(ctx: click.Context) -> None:
    """Stop algod and kmd."""
    try:
        with _orchestrator(ctx) as orchestrator:
            orchestrator.stop()
    except AlgorunError as e:
        raise _fail("stop", e) from e


@click.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the installed release and the node status."""
    _, console, verbose, _ = _get_context_objects(ctx)

    try:
        with _orchestrator(ctx) as orchestrator:
            record = orchestrator.installed()
            if record is not None:
                table = Table(title="Installation", show_header=False)
                table.add_column("Property", style="cyan")
                table.add_column("Value", style="magenta")
                table.add_row("Release", record.raw_tag)
                table.add_row("Version", record.semver)
                table.add_row("Channel", record.channel)
                table.add_row("Installed", record.installed_at.isoformat())
                if verbose:
                    table.add_row("Operation", record.operation.value)
                    table.add_row("Root", str(orchestrator.paths.root))
                console.print(table)
            orchestrator.status()
    except AlgorunError as e:
        raise _fail("status", e) from e


@click.command(context_settings={"ignore_unknown_options": True})
@click.argument("goal_args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def goal(ctx: click.Context, goal_args: tuple[str, ...]) -> None:
    """Run goal with GOAL_ARGS against the managed data directory."""
    try:
        with _orchestrator(ctx) as orchestrator:
            orchestrator.goal(list(goal_args))
    except AlgorunError as e:
        raise _fail("goal", e) from e
