"""Control-binary invocation and node/kmd process lifecycle."""

from __future__ import annotations

import shlex
import subprocess
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

from algorun.core.cancellation import CancellationToken, never_cancelled
from algorun.core.errors import CancelledError, ProcessError
from algorun.core.types import ProcessState

logger = structlog.get_logger()

LineCallback = Callable[[str], None]

_WATCH_INTERVAL = 0.05


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one control-binary invocation."""

    argv: list[str]
    returncode: int
    output: str


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


class CommandRunner:
    """Run a command, streaming merged stdout/stderr line by line.

    Output is handed to ``on_line`` as each line arrives rather than after
    the process exits. The process is killed if the cancellation token
    fires or the per-call timeout elapses.
    """

    def run(
        self,
        argv: Sequence[str],
        on_line: LineCallback | None = None,
        token: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run ``argv`` to completion.

        Args:
            argv: Command line
            on_line: Receives each output line without its newline
            token: Cancellation token
            timeout: Seconds before the process is killed

        Returns:
            Command result for a zero exit status

        Raises:
            ProcessError: On non-zero exit, spawn failure or timeout
            CancelledError: If the token fired while the process ran
        """
        token = token or never_cancelled()
        token.check()
        argv_list = [str(a) for a in argv]
        logger.debug("command_started", command=_fmt_argv(argv_list))

        try:
            proc = subprocess.Popen(
                argv_list,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            raise ProcessError(
                f"Cannot run {argv_list[0]}: {e}", argv=argv_list, returncode=None
            ) from e

        killed: list[str] = []
        finished = threading.Event()
        deadline = time.monotonic() + timeout if timeout is not None else None

        def watch() -> None:
            while not finished.wait(_WATCH_INTERVAL):
                if token.is_cancelled():
                    killed.append("cancelled")
                elif deadline is not None and time.monotonic() >= deadline:
                    killed.append("timeout")
                else:
                    continue
                proc.kill()
                return

        watcher = threading.Thread(target=watch, name="command-watch", daemon=True)
        watcher.start()

        lines: list[str] = []
        try:
            assert proc.stdout is not None
            for raw in proc.stdout:
                line = raw.rstrip("\r\n")
                lines.append(line)
                if on_line is not None:
                    on_line(line)
            returncode = proc.wait()
        finally:
            finished.set()
            watcher.join()
            if proc.poll() is None:
                proc.kill()
                proc.wait()

        output = "\n".join(lines)
        if killed and killed[0] == "cancelled":
            raise CancelledError(f"{_fmt_argv(argv_list)} was cancelled")
        if killed:
            raise ProcessError(
                f"{_fmt_argv(argv_list)} timed out after {timeout}s",
                argv=argv_list,
                returncode=returncode,
                output=output,
            )
        if returncode != 0:
            raise ProcessError(
                f"{_fmt_argv(argv_list)} exited with status {returncode}",
                argv=argv_list,
                returncode=returncode,
                output=output,
            )

        logger.debug("command_finished", command=_fmt_argv(argv_list), returncode=returncode)
        return CommandResult(argv=argv_list, returncode=returncode, output=output)


class NodeController:
    """Drive algod and kmd through the ``goal`` control binary.

    Every call runs ``<goal> -d <data_dir> <subcommand...>``.

    State transitions:
        STOPPED --start--> STARTING --> RUNNING
        RUNNING --stop--> STOPPING --> STOPPED

    A failed start falls back to STOPPED. Crashed processes are never
    restarted automatically.
    """

    def __init__(
        self,
        goal_path: Path,
        data_dir: Path,
        runner: CommandRunner | None = None,
        on_line: LineCallback | None = None,
        token: CancellationToken | None = None,
    ):
        self.goal_path = goal_path
        self.data_dir = data_dir
        self.runner = runner or CommandRunner()
        self.on_line = on_line
        self.token = token or never_cancelled()
        self.state = ProcessState.STOPPED

    def goal(self, *args: str) -> CommandResult:
        """Run an arbitrary goal subcommand against the data directory."""
        argv = [str(self.goal_path), "-d", str(self.data_dir), *args]
        return self.runner.run(argv, on_line=self.on_line, token=self.token)

    def start(self) -> None:
        """Start algod, then kmd with no idle timeout."""
        self.state = ProcessState.STARTING
        try:
            self.goal("node", "start")
            self.goal("kmd", "start", "-t", "0")
        except BaseException:
            self.state = ProcessState.STOPPED
            raise
        self.state = ProcessState.RUNNING
        logger.info("node_started", data_dir=str(self.data_dir))

    def stop(self) -> None:
        """Stop algod and kmd; either one already being down is not an error."""
        self.state = ProcessState.STOPPING
        for args in (("node", "stop"), ("kmd", "stop")):
            try:
                self.goal(*args)
            except ProcessError as e:
                logger.warning(
                    "stop_ignored",
                    command=" ".join(args),
                    returncode=e.returncode,
                    error=str(e),
                )
        self.state = ProcessState.STOPPED
        logger.info("node_stopped", data_dir=str(self.data_dir))

    def status(self) -> CommandResult:
        """Report node status; a failure is raised, never read as 'stopped'."""
        return self.goal("node", "status")

    def catchup(self, label: str) -> CommandResult:
        """Start a fast catchup to ``label``."""
        logger.info("catchup_requested", catchpoint=label)
        return self.goal("node", "catchup", label)
