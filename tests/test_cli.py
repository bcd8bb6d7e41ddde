"""Tests for CLI commands and help output.

Smoke tests for command registration plus end-to-end rollouts driven
through the CLI against a file-backed store.
"""

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from canaryctl.cli import cli
from canaryctl.deploy.models import DeploymentStatus, RollbackStatus, StepStatus
from canaryctl.deploy.state import DeploymentState


def state_store(config_file: str) -> DeploymentState:
    return DeploymentState(Path(config_file).parent / "state")


def create_deployment(cli_runner: CliRunner, config_file: str, *extra: str) -> str:
    result = cli_runner.invoke(
        cli,
        [
            "-c", config_file, "--no-color",
            "canary", "create",
            "--name", "web-v2",
            "--target", "web",
            "--image", "registry.example.com/web:2.0.0",
            "--stable-version", "1.9.3",
            *extra,
        ],
    )
    assert result.exit_code == 0, result.output
    deployments = state_store(config_file).list_deployments()
    assert len(deployments) == 1
    return deployments[0].id


# =============================================================================
# CLI Entry Point
# =============================================================================


class TestCLIEntryPoint:
    """Tests for main CLI entry point, flags, and options."""

    def test_help(self, cli_runner: CliRunner):
        """Test CLI help output."""
        result = cli_runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "CanaryCtl" in result.output
        assert "canary" in result.output
        assert "template" in result.output
        assert "config" in result.output

    def test_version(self, cli_runner: CliRunner):
        """Test CLI version output."""
        result = cli_runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "canaryctl version" in result.output

    def test_invalid_output_format(self, cli_runner: CliRunner):
        result = cli_runner.invoke(cli, ["-o", "xml", "config"])
        assert result.exit_code != 0
        assert "Invalid format" in result.output

    def test_unknown_profile(self, cli_runner: CliRunner, temp_config_file):
        result = cli_runner.invoke(cli, ["-c", temp_config_file, "-p", "staging", "config"])
        assert result.exit_code == 1

    def test_config_json(self, cli_runner: CliRunner, temp_config_file):
        result = cli_runner.invoke(cli, ["-c", temp_config_file, "--no-color", "-o", "json", "config"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["profile"] == "default"
        assert data["state"]["backend"] == "file"
        assert data["metrics"]["provider"] == "simulated"
        assert data["defaults"]["increment_percent"] == 10

    def test_verbose_flag(self, cli_runner: CliRunner):
        result = cli_runner.invoke(cli, ["-v", "--help"])
        assert result.exit_code == 0


class TestCommandHelp:
    """Help output of the command groups."""

    @pytest.mark.parametrize(
        "command",
        [
            "create", "start", "progress", "run", "promote", "pause", "resume",
            "cancel", "rollback", "complete-rollback", "status", "list", "steps",
            "metrics", "rollbacks", "analyze", "delete",
        ],
    )
    def test_canary_commands_listed(self, cli_runner: CliRunner, command):
        result = cli_runner.invoke(cli, ["canary", "--help"])
        assert result.exit_code == 0
        assert command in result.output

    def test_template_help(self, cli_runner: CliRunner):
        result = cli_runner.invoke(cli, ["template", "--help"])
        assert result.exit_code == 0
        for command in ("create", "list", "show", "delete"):
            assert command in result.output

    def test_create_requires_image(self, cli_runner: CliRunner):
        result = cli_runner.invoke(cli, ["canary", "create", "--name", "x", "--target", "web"])
        assert result.exit_code != 0
        assert "--image" in result.output


# =============================================================================
# Canary rollouts
# =============================================================================


class TestCanaryLifecycle:
    """End-to-end rollouts through the CLI."""

    def test_create_plans_steps(self, cli_runner: CliRunner, temp_config_file):
        deployment_id = create_deployment(cli_runner, temp_config_file, "--increment", "30")

        steps = state_store(temp_config_file).get_steps(deployment_id)
        assert [s.target_percent for s in steps] == [10, 40, 70, 100]

    def test_create_rollback_toggles(self, cli_runner: CliRunner, temp_config_file):
        deployment_id = create_deployment(
            cli_runner,
            temp_config_file,
            "--no-rollback-on-error-rate",
            "--rollback-on-latency",
            "--no-rollback-on-pod-failure",
        )

        deployment = state_store(temp_config_file).get_deployment(deployment_id)
        assert deployment.rollback_on_error_rate is False
        assert deployment.rollback_on_latency is True
        assert deployment.rollback_on_pod_failure is False

    def test_create_rollback_toggles_default_on(self, cli_runner: CliRunner, temp_config_file):
        deployment_id = create_deployment(cli_runner, temp_config_file)

        deployment = state_store(temp_config_file).get_deployment(deployment_id)
        assert deployment.rollback_on_error_rate is True
        assert deployment.rollback_on_latency is True
        assert deployment.rollback_on_pod_failure is True

    def test_create_rejects_bad_ladder(self, cli_runner: CliRunner, temp_config_file):
        result = cli_runner.invoke(
            cli,
            [
                "-c", temp_config_file, "--no-color",
                "canary", "create", "--name", "x", "--target", "web", "--image", "web:2",
                "--initial", "60", "--target-percent", "50",
            ],
        )
        assert result.exit_code != 0
        assert state_store(temp_config_file).list_deployments() == []

    def test_start_progress_and_status(self, cli_runner: CliRunner, temp_config_file):
        deployment_id = create_deployment(cli_runner, temp_config_file)

        result = cli_runner.invoke(cli, ["-c", temp_config_file, "--no-color", "canary", "start", deployment_id])
        assert result.exit_code == 0
        assert "10% canary traffic" in result.output

        result = cli_runner.invoke(cli, ["-c", temp_config_file, "--no-color", "canary", "progress", deployment_id])
        assert result.exit_code == 0
        assert "advanced" in result.output

        stored = state_store(temp_config_file).get_deployment(deployment_id)
        assert stored.status == DeploymentStatus.PROGRESSING
        assert stored.current_canary_percent == 20

        result = cli_runner.invoke(
            cli, ["-c", temp_config_file, "--no-color", "-o", "json", "canary", "status", deployment_id]
        )
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["status"] == "progressing"
        assert [s["status"] for s in data["steps"][:3]] == ["completed", "running", "pending"]

        result = cli_runner.invoke(
            cli, ["-c", temp_config_file, "--no-color", "-o", "json", "canary", "metrics", deployment_id]
        )
        assert result.exit_code == 0
        records = json.loads(result.stdout)
        assert [r["analysis_result"] for r in records] == ["healthy"]

    def test_run_to_promotion(self, cli_runner: CliRunner, temp_config_file):
        deployment_id = create_deployment(cli_runner, temp_config_file, "--increment", "45")
        cli_runner.invoke(cli, ["-c", temp_config_file, "canary", "start", deployment_id])

        result = cli_runner.invoke(
            cli, ["-c", temp_config_file, "--no-color", "canary", "run", deployment_id, "--interval", "0"]
        )

        assert result.exit_code == 0, result.output
        assert "promoted" in result.output
        stored = state_store(temp_config_file).get_deployment(deployment_id)
        assert stored.status == DeploymentStatus.PROMOTED
        assert stored.current_canary_percent == 100

    def test_pause_resume_promote(self, cli_runner: CliRunner, temp_config_file):
        deployment_id = create_deployment(cli_runner, temp_config_file)
        base = ["-c", temp_config_file, "--no-color", "canary"]
        cli_runner.invoke(cli, [*base, "start", deployment_id])

        result = cli_runner.invoke(cli, [*base, "pause", deployment_id])
        assert result.exit_code == 0
        assert state_store(temp_config_file).get_deployment(deployment_id).status == DeploymentStatus.PAUSED

        result = cli_runner.invoke(cli, [*base, "resume", deployment_id])
        assert result.exit_code == 0

        result = cli_runner.invoke(cli, [*base, "promote", deployment_id, "-y"])
        assert result.exit_code == 0
        store = state_store(temp_config_file)
        assert store.get_deployment(deployment_id).status == DeploymentStatus.PROMOTED
        assert store.get_steps(deployment_id)[-1].status == StepStatus.SKIPPED

    def test_manual_rollback(self, cli_runner: CliRunner, temp_config_file):
        deployment_id = create_deployment(cli_runner, temp_config_file)
        base = ["-c", temp_config_file, "--no-color", "canary"]
        cli_runner.invoke(cli, [*base, "start", deployment_id])

        result = cli_runner.invoke(
            cli, [*base, "rollback", deployment_id, "--reason", "checkout errors", "--initiated-by", "alice", "-y"]
        )

        assert result.exit_code == 0, result.output
        store = state_store(temp_config_file)
        assert store.get_deployment(deployment_id).status == DeploymentStatus.ROLLED_BACK
        record = store.get_rollbacks(deployment_id)[0]
        assert record.status == RollbackStatus.COMPLETED
        assert record.initiated_by == "alice"

        result = cli_runner.invoke(cli, ["-c", temp_config_file, "--no-color", "-o", "json", "canary", "rollbacks", deployment_id])
        assert result.exit_code == 0
        assert json.loads(result.stdout)[0]["reason"] == "checkout errors"

    def test_open_then_complete_rollback(self, cli_runner: CliRunner, temp_config_file):
        deployment_id = create_deployment(cli_runner, temp_config_file)
        base = ["-c", temp_config_file, "--no-color", "canary"]
        cli_runner.invoke(cli, [*base, "start", deployment_id])

        result = cli_runner.invoke(cli, [*base, "rollback", deployment_id, "--reason", "drain", "--no-complete", "-y"])
        assert result.exit_code == 0
        store = state_store(temp_config_file)
        record = store.get_rollbacks(deployment_id)[0]
        assert record.status == RollbackStatus.IN_PROGRESS

        result = cli_runner.invoke(
            cli, [*base, "complete-rollback", record.id, "--failed", "--error-message", "mesh down"]
        )
        assert result.exit_code == 0
        deployment = store.get_deployment(deployment_id)
        assert deployment.status == DeploymentStatus.FAILED
        assert deployment.error_message == "mesh down"

    def test_conflicting_command_aborts(self, cli_runner: CliRunner, temp_config_file):
        deployment_id = create_deployment(cli_runner, temp_config_file)

        result = cli_runner.invoke(cli, ["-c", temp_config_file, "--no-color", "canary", "progress", deployment_id])

        assert result.exit_code != 0

    def test_unknown_deployment(self, cli_runner: CliRunner, temp_config_file):
        result = cli_runner.invoke(cli, ["-c", temp_config_file, "--no-color", "canary", "status", "missing"])
        assert result.exit_code != 0

    @pytest.mark.parametrize("args", [["status", "../x"], ["cancel", "../x", "--yes"]])
    def test_path_like_id_rejected(self, cli_runner: CliRunner, temp_config_file, tmp_path, args):
        outside = tmp_path / "x.json"
        outside.write_text("{}")

        result = cli_runner.invoke(cli, ["-c", temp_config_file, "--no-color", "canary", *args])

        assert result.exit_code != 0
        assert outside.read_text() == "{}"

    def test_list_and_delete(self, cli_runner: CliRunner, temp_config_file):
        deployment_id = create_deployment(cli_runner, temp_config_file)
        base = ["-c", temp_config_file, "--no-color", "canary"]

        result = cli_runner.invoke(
            cli, ["-c", temp_config_file, "--no-color", "-o", "json", "canary", "list", "--status", "pending"]
        )
        assert result.exit_code == 0
        assert [d["id"] for d in json.loads(result.stdout)] == [deployment_id]

        result = cli_runner.invoke(cli, [*base, "delete", deployment_id, "-y"])
        assert result.exit_code == 0
        assert state_store(temp_config_file).list_deployments() == []

    def test_analyze(self, cli_runner: CliRunner, temp_config_file):
        deployment_id = create_deployment(cli_runner, temp_config_file)

        result = cli_runner.invoke(
            cli, ["-c", temp_config_file, "--no-color", "-o", "json", "canary", "analyze", deployment_id]
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["analysis_result"] == "healthy"
        assert data["advisory"] is None


# =============================================================================
# Templates
# =============================================================================


class TestTemplateCommands:
    """Template commands against a file-backed store."""

    def test_template_applies_to_new_deployments(self, cli_runner: CliRunner, temp_config_file):
        base = ["-c", temp_config_file, "--no-color"]
        result = cli_runner.invoke(
            cli, [*base, "template", "create", "--name", "cautious", "--initial", "5", "--increment", "5", "--default"]
        )
        assert result.exit_code == 0, result.output

        templates = state_store(temp_config_file).list_templates()
        assert [t.name for t in templates] == ["cautious"]

        result = cli_runner.invoke(cli, [*base, "-o", "yaml", "template", "show", templates[0].id])
        assert result.exit_code == 0
        assert yaml.safe_load(result.stdout)["increment_percent"] == 5

        deployment_id = create_deployment(cli_runner, temp_config_file, "--target-percent", "20")
        steps = state_store(temp_config_file).get_steps(deployment_id)
        assert [s.target_percent for s in steps] == [5, 10, 15, 20]

    def test_template_list_and_delete(self, cli_runner: CliRunner, temp_config_file):
        base = ["-c", temp_config_file, "--no-color", "template"]
        cli_runner.invoke(cli, [*base, "create", "--name", "fast", "--increment", "50"])
        template_id = state_store(temp_config_file).list_templates()[0].id

        result = cli_runner.invoke(cli, ["-c", temp_config_file, "--no-color", "-o", "json", "template", "list"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)[0]["name"] == "fast"

        result = cli_runner.invoke(cli, [*base, "delete", template_id, "-y"])
        assert result.exit_code == 0
        assert state_store(temp_config_file).list_templates() == []
