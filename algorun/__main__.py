"""Main entry point for the algorun CLI."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import click
import structlog
from rich.console import Console

from algorun import __version__
from algorun.commands.node import catchup, create, goal, start, status, stop, update
from algorun.core.config import AppConfig


def configure_logging(level: str = "INFO", colors: bool = False) -> None:
    """Configure structlog on top of stdlib logging, writing to stderr."""
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(message)s",
        stream=sys.stderr,
        force=True,
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=colors),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


configure_logging()

logger = structlog.get_logger()


@click.group()
@click.version_option(version=__version__, prog_name="algorun")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file path",
)
@click.option(
    "--base-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Installation root (default: ./test-algorun-dir)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", "-d", is_flag=True, help="Enable debug output")
@click.pass_context
def main(
    ctx: click.Context,
    config: Path | None,
    base_dir: Path | None,
    verbose: bool,
    debug: bool,
) -> None:
    """Install, update and run an Algorand node."""
    ctx.ensure_object(dict)

    # Load configuration
    try:
        app_config = AppConfig.load(config)
    except Exception as e:
        logger.error("Failed to load configuration", error=str(e))
        sys.exit(1)

    # Override config with CLI options
    if verbose or debug:
        app_config.log_level = "DEBUG" if debug else "INFO"
    if base_dir is not None:
        app_config.base_dir = base_dir

    configure_logging(app_config.log_level, colors=debug)

    # Store config and console in context for subcommands
    ctx.obj["config"] = app_config
    ctx.obj["console"] = Console()
    ctx.obj["verbose"] = verbose or debug
    ctx.obj["debug"] = debug

    logger.debug("CLI initialized", config=app_config.model_dump(mode="json"))


@main.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Show version information."""
    console: Console = ctx.obj["console"]
    console.print(f"algorun {__version__}")
    if ctx.obj["verbose"]:
        console.print(f"Python {sys.version}")
        console.print(f"Platform: {sys.platform}")


# Register commands
main.add_command(create)
main.add_command(update)
main.add_command(catchup)
main.add_command(start)
main.add_command(stop)
main.add_command(status)
main.add_command(goal)


def handle_exception(exc_type: type[BaseException], exc_value: BaseException, exc_traceback: Any) -> None:
    """Handle uncaught exceptions."""
    if issubclass(exc_type, KeyboardInterrupt):
        logger.info("Operation cancelled by user")
        sys.exit(1)

    logger.error(
        "Uncaught exception",
        exc_info=(exc_type, exc_value, exc_traceback),
    )
    sys.exit(1)


def run() -> None:
    """Console script entry point."""
    sys.excepthook = handle_exception

    try:
        main()
    except Exception as e:
        logger.error("CLI execution failed", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    run()
