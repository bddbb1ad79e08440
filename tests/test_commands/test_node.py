"""Tests for algorun.commands.node module."""

import io
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest
from click.testing import CliRunner
from rich.console import Console

from algorun.commands.node import catchup, create, goal, start, status, stop, update
from algorun.core.errors import CatchpointFetchError, NotFoundError, ProcessError
from algorun.core.orchestrator import CreateResult, Orchestrator, UpdateResult
from algorun.core.process import CommandResult
from algorun.core.types import InstallRecord, NodeEndpoint, Operation, ResolvedVersion

VERSION = ResolvedVersion.from_tag("v1.2.3-stable")


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def mock_orchestrator():
    """Patch Orchestrator in the command module; yields (class, instance)."""
    with patch("algorun.commands.node.Orchestrator") as mock_cls:
        instance = MagicMock(spec=Orchestrator)
        instance.paths = MagicMock()
        mock_cls.return_value.__enter__.return_value = instance
        yield mock_cls, instance


def _create_result(**overrides) -> CreateResult:
    values = dict(
        version=VERSION,
        archive=Path("/tmp/archive.tar.gz"),
        node=NodeEndpoint(address="127.0.0.1:8080", token="t"),
        synced_round=11,
        catchpoint="100#ABC",
    )
    values.update(overrides)
    return CreateResult(**values)


class TestCreateCommand:
    """Test create command."""

    def test_defaults(self, runner, cli_obj, mock_orchestrator, mock_console):
        mock_cls, orchestrator = mock_orchestrator
        orchestrator.create.return_value = _create_result()

        result = runner.invoke(create, [], obj=cli_obj)

        assert result.exit_code == 0
        orchestrator.create.assert_called_once_with("stable", False)
        assert any("Installed v1.2.3-stable" in line for line in mock_console.printed_lines)
        assert any("catching up" in line for line in mock_console.printed_lines)
        assert mock_cls.call_args.kwargs["progress"] is not None

    def test_release_and_force(self, runner, cli_obj, mock_orchestrator):
        _, orchestrator = mock_orchestrator
        orchestrator.create.return_value = _create_result()

        result = runner.invoke(create, ["--force-download", "beta"], obj=cli_obj)

        assert result.exit_code == 0
        orchestrator.create.assert_called_once_with("beta", True)

    def test_base_dir_override(self, runner, cli_obj, mock_orchestrator, tmp_path):
        mock_cls, orchestrator = mock_orchestrator
        orchestrator.create.return_value = _create_result()

        result = runner.invoke(create, ["--base-dir", str(tmp_path / "other")], obj=cli_obj)

        assert result.exit_code == 0
        assert mock_cls.call_args.args[0].base_dir == tmp_path / "other"
        assert cli_obj["config"].base_dir != tmp_path / "other"

    def test_catchup_failure_is_a_warning(self, runner, cli_obj, mock_orchestrator, mock_console):
        _, orchestrator = mock_orchestrator
        orchestrator.create.return_value = _create_result(
            catchpoint=None, catchup_error=CatchpointFetchError("HTTP 500")
        )

        result = runner.invoke(create, [], obj=cli_obj)

        assert result.exit_code == 0
        assert any("catchup not started" in line for line in mock_console.printed_lines)

    def test_failure_names_operation(self, runner, cli_obj, mock_orchestrator):
        _, orchestrator = mock_orchestrator
        orchestrator.create.side_effect = NotFoundError("No release found", channel="x")

        result = runner.invoke(create, ["x"], obj=cli_obj)

        assert result.exit_code == 1
        assert "create failed: No release found" in result.output


class TestUpdateCommand:
    """Test update command."""

    def test_update(self, runner, cli_obj, mock_orchestrator, mock_console):
        _, orchestrator = mock_orchestrator
        orchestrator.update.return_value = UpdateResult(
            version=VERSION, archive=Path("/tmp/a.tar.gz")
        )

        result = runner.invoke(update, ["--force-download"], obj=cli_obj)

        assert result.exit_code == 0
        orchestrator.update.assert_called_once_with("stable", True)
        assert any("Updated to v1.2.3-stable" in line for line in mock_console.printed_lines)

    def test_update_failure(self, runner, cli_obj, mock_orchestrator):
        _, orchestrator = mock_orchestrator
        orchestrator.update.side_effect = ProcessError("goal exited with status 1", returncode=1)

        result = runner.invoke(update, [], obj=cli_obj)

        assert result.exit_code == 1
        assert "update failed" in result.output


class TestNodeCommands:
    """Test catchup, start, stop, status and goal commands."""

    def test_catchup(self, runner, cli_obj, mock_orchestrator, mock_console):
        _, orchestrator = mock_orchestrator
        orchestrator.catchup.return_value = "100#ABC"

        result = runner.invoke(catchup, [], obj=cli_obj)

        assert result.exit_code == 0
        assert any("100#ABC" in line for line in mock_console.printed_lines)

    def test_catchup_failure(self, runner, cli_obj, mock_orchestrator):
        _, orchestrator = mock_orchestrator
        orchestrator.catchup.side_effect = CatchpointFetchError("empty label")

        result = runner.invoke(catchup, [], obj=cli_obj)

        assert result.exit_code == 1
        assert "catchup failed: empty label" in result.output

    def test_start_and_stop(self, runner, cli_obj, mock_orchestrator):
        _, orchestrator = mock_orchestrator

        assert runner.invoke(start, [], obj=cli_obj).exit_code == 0
        assert runner.invoke(stop, [], obj=cli_obj).exit_code == 0
        orchestrator.start.assert_called_once_with()
        orchestrator.stop.assert_called_once_with()

    def test_status_with_record(self, runner, cli_obj, mock_orchestrator):
        _, orchestrator = mock_orchestrator
        orchestrator.installed.return_value = InstallRecord(
            raw_tag="v1.2.3-stable",
            semver="1.2.3",
            channel="stable",
            operation=Operation.CREATE,
            installed_at="2026-01-01T00:00:00+00:00",
        )

        result = runner.invoke(status, [], obj=cli_obj)

        assert result.exit_code == 0
        orchestrator.status.assert_called_once_with()

    def test_status_failure(self, runner, cli_obj, mock_orchestrator):
        _, orchestrator = mock_orchestrator
        orchestrator.installed.return_value = None
        orchestrator.status.side_effect = ProcessError("node not running", returncode=1)

        result = runner.invoke(status, [], obj=cli_obj)

        assert result.exit_code == 1
        assert "status failed" in result.output

    def test_goal_passthrough(self, runner, cli_obj, mock_orchestrator):
        _, orchestrator = mock_orchestrator
        orchestrator.goal.return_value = CommandResult(["goal"], 0, "")

        result = runner.invoke(goal, ["account", "list", "--default"], obj=cli_obj)

        assert result.exit_code == 0
        orchestrator.goal.assert_called_once_with(["account", "list", "--default"])


@pytest.mark.integration
class TestCreateEndToEnd:
    """Run create through the CLI against the fake network and goal."""

    def test_create_and_update(self, runner, app_config, http_client, fake_network):
        console = Console(file=io.StringIO(), width=120)
        obj = {"config": app_config, "console": console, "verbose": False, "debug": False}

        def build(config, **kwargs):
            return Orchestrator(config, client=http_client, **kwargs)

        with patch("algorun.commands.node.Orchestrator", side_effect=build):
            result = runner.invoke(create, [], obj=obj)
            assert result.exit_code == 0, result.output

            config_path = app_config.paths.data_dir / "config.json"
            assert json.loads(config_path.read_text())["EndpointAddress"] == "0.0.0.0:8080"
            custom = b'{"EndpointAddress": "0.0.0.0:1234"}'
            config_path.write_bytes(custom)

            result = runner.invoke(update, [], obj=obj)
            assert result.exit_code == 0, result.output
            assert config_path.read_bytes() == custom

        output = console.file.getvalue()
        assert "Installed v1.2.3-stable" in output
        assert "Algorand node successfully started!" in output
        assert "Updated to v1.2.3-stable" in output

    def test_create_reports_status_failure(self, runner, app_config, http_client, fake_network):
        fake_network.overrides["http://127.0.0.1:8080/v2/status"] = httpx.Response(500)
        console = Console(file=io.StringIO(), width=120)
        obj = {"config": app_config, "console": console, "verbose": False, "debug": False}

        def build(config, **kwargs):
            return Orchestrator(config, client=http_client, **kwargs)

        with patch("algorun.commands.node.Orchestrator", side_effect=build):
            result = runner.invoke(create, [], obj=obj)

        assert result.exit_code == 1
        assert "create failed" in result.output + console.file.getvalue()
        assert "HTTP 500" in result.output + console.file.getvalue()
