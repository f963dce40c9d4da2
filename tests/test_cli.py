"""
CLI tests for the stack commands.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from cli.__main__ import cli, confirm_each
from config import OrchestratorConfig
from deployment import CleanupResult, DeploymentResult, DeploymentStatus

STACKS = [
    {"region": "us-east-1", "stackName": "infra", "forceDelete": True},
    {"region": "us-east-1", "stackName": "app", "dependsOn": [{"region": "us-east-1", "name": "infra"}]},
]


@pytest.fixture
def stacks_file(tmp_path):
    path = tmp_path / "stacks.json"
    path.write_text(json.dumps(STACKS))
    return str(path)


@pytest.fixture
def orchestrator():
    """Patch the orchestrator built by the commands."""
    instance = MagicMock(name="orchestrator")
    with patch("cli.__main__.Orchestrator", return_value=instance) as factory, patch(
        "cli.__main__.get_config", return_value=OrchestratorConfig()
    ):
        instance.factory = factory
        yield instance


def results(status=DeploymentStatus.SUCCESS):
    return {
        "us-east-1|infra": DeploymentResult("us-east-1|infra", DeploymentStatus.SUCCESS, "Deployed"),
        "us-east-1|app": DeploymentResult("us-east-1|app", status, "Deployed"),
    }


def test_help() -> None:
    result = CliRunner().invoke(cli, ["--help"])

    assert result.exit_code == 0
    for command in ("deploy", "delete", "cleanup", "package", "sync", "status"):
        assert command in result.output


def test_deploy(stacks_file, orchestrator) -> None:
    orchestrator.deploy = AsyncMock(return_value=results())

    result = CliRunner().invoke(cli, ["deploy", stacks_file])

    assert result.exit_code == 0, result.output
    assert "us-east-1|app: success Deployed" in result.output
    stacks = orchestrator.deploy.await_args.args[0]
    assert [s.stack_name for s in stacks] == ["infra", "app"]


def test_deploy_failure_exit_code(stacks_file, orchestrator) -> None:
    orchestrator.deploy = AsyncMock(return_value=results(DeploymentStatus.FAILED))

    result = CliRunner().invoke(cli, ["deploy", stacks_file])

    assert result.exit_code == 1


def test_selected_names(stacks_file, orchestrator) -> None:
    orchestrator.delete = AsyncMock(return_value={})

    CliRunner().invoke(cli, ["delete", stacks_file, "app"])

    stacks = orchestrator.delete.await_args.args[0]
    assert [s.stack_name for s in stacks] == ["app"]


def test_unknown_name(stacks_file, orchestrator) -> None:
    result = CliRunner().invoke(cli, ["delete", stacks_file, "missing"])

    assert result.exit_code == 2
    assert "No stack named missing" in result.output


def test_yes_disables_confirmations(stacks_file, orchestrator) -> None:
    """Test that --yes builds the orchestrator without a selector."""
    orchestrator.cleanup = AsyncMock(return_value=CleanupResult(["a.zip"], []))

    result = CliRunner().invoke(cli, ["--yes", "cleanup", stacks_file])

    assert result.exit_code == 0, result.output
    assert orchestrator.factory.call_args.kwargs["select"] is None
    assert "Pruned files: 1" in result.output

    CliRunner().invoke(cli, ["cleanup", stacks_file])
    assert orchestrator.factory.call_args.kwargs["select"] is confirm_each


def test_sync_json(stacks_file, orchestrator) -> None:
    orchestrator.sync = AsyncMock(return_value={"us-east-1|app": {"ApiUrl": "https://api"}})

    result = CliRunner().invoke(cli, ["sync", stacks_file, "--json"])

    assert json.loads(result.output) == {"us-east-1|app": {"ApiUrl": "https://api"}}


def test_status(stacks_file, orchestrator) -> None:
    orchestrator.get_status = AsyncMock(side_effect=["CREATE_COMPLETE", "NEW"])

    result = CliRunner().invoke(cli, ["status", stacks_file])

    assert "infra (us-east-1): CREATE_COMPLETE" in result.output
    assert "app (us-east-1): NEW" in result.output


def test_errors_are_reported(stacks_file, orchestrator) -> None:
    orchestrator.package = AsyncMock(side_effect=ValueError("A bucket is missing"))

    result = CliRunner().invoke(cli, ["package", stacks_file])

    assert result.exit_code == 1
    assert "Error: A bucket is missing" in result.output


def test_invalid_stacks_file(tmp_path, orchestrator) -> None:
    path = tmp_path / "stacks.json"
    path.write_text(json.dumps([{"region": "us-east-1"}]))

    result = CliRunner().invoke(cli, ["deploy", str(path)])

    assert result.exit_code != 0
    orchestrator.factory.assert_not_called()
