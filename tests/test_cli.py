"""Tests for the command line interface."""
import json
import logging

import pytest
from typer.testing import CliRunner

from paramarena.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    level, handlers = root.level, list(root.handlers)
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """App config, experiment YAML and an importable target module."""
    db_path = tmp_path / "cli.duckdb"
    config_path = tmp_path / "app.yaml"
    config_path.write_text(
        f"storage:\n  duckdb_path: {db_path.as_posix()}\nlogging:\n  level: WARNING\n",
        encoding="utf-8",
    )
    (tmp_path / "cli_targets.py").write_text(
        "def respond(combination):\n"
        "    if combination['model'] == 'gpt-4':\n"
        "        return 'A long and detailed answer'\n"
        "    return 'Short'\n",
        encoding="utf-8",
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    experiment_path = tmp_path / "sweep.yaml"
    experiment_path.write_text(
        "description: cli sweep\n"
        "parameters:\n"
        "  model: [gpt-4, claude-3]\n"
        "  temperature: [0.5, 0.7]\n"
        "target: cli_targets:respond\n"
        "evaluation:\n"
        "  type: string\n",
        encoding="utf-8",
    )
    return {
        "config": str(config_path),
        "experiment": str(experiment_path),
        "db": db_path,
        "dir": tmp_path,
    }


def run_sweep(env):
    return runner.invoke(app, ["run-experiment", env["experiment"], "--config-path", env["config"]])


class TestCli:
    """End-to-end tests through the typer app."""

    def test_init_db(self, cli_env):
        """Test that init-db creates the database file."""
        result = runner.invoke(app, ["init-db", "--config-path", cli_env["config"]])

        assert result.exit_code == 0, result.output
        assert cli_env["db"].exists()

    def test_run_experiment(self, cli_env):
        """Test running a sweep and saving the report."""
        report_path = cli_env["dir"] / "report.json"

        result = runner.invoke(
            app,
            [
                "run-experiment",
                cli_env["experiment"],
                "--config-path",
                cli_env["config"],
                "--output-file",
                str(report_path),
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Experiment complete" in result.output
        report = json.loads(report_path.read_text(encoding="utf-8"))
        assert report["evaluation_summary"]["total_comparisons"] == 6
        assert len(report["results"]) == 4

    def test_run_experiment_missing_file(self, cli_env):
        """Test that a missing experiment file exits with an error."""
        result = runner.invoke(
            app, ["run-experiment", str(cli_env["dir"] / "nope.yaml"), "--config-path", cli_env["config"]]
        )

        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_leaderboard_and_history(self, cli_env):
        """Test reading back ratings and history after a sweep."""
        assert run_sweep(cli_env).exit_code == 0

        leaderboard = runner.invoke(
            app, ["leaderboard", "--parameter", "model", "--config-path", cli_env["config"]]
        )
        history = runner.invoke(app, ["history", "--config-path", cli_env["config"]])

        assert leaderboard.exit_code == 0, leaderboard.output
        assert "gpt-4" in leaderboard.output
        assert history.exit_code == 0, history.output
        assert "cli sweep" in history.output

    def test_export_ratings_csv(self, cli_env):
        """Test exporting ratings to a CSV file."""
        assert run_sweep(cli_env).exit_code == 0
        output = cli_env["dir"] / "ratings.csv"

        result = runner.invoke(
            app,
            ["export-ratings", "--format", "csv", "--output-file", str(output), "--config-path", cli_env["config"]],
        )

        assert result.exit_code == 0, result.output
        lines = output.read_text(encoding="utf-8").strip().splitlines()
        assert lines[0].startswith("dimension,name,value,rating")
        # 4 parameter values + 4 combinations
        assert len(lines) == 9

    def test_suggest_config(self, cli_env):
        """Test exporting the best suggestion as env lines."""
        assert run_sweep(cli_env).exit_code == 0
        output = cli_env["dir"] / "best.env"

        result = runner.invoke(
            app,
            [
                "suggest-config",
                "model",
                "temperature",
                "--output-file",
                str(output),
                "--format",
                "env",
                "--config-path",
                cli_env["config"],
            ],
        )

        assert result.exit_code == 0, result.output
        assert output.read_text(encoding="utf-8").startswith('MODEL="gpt-4"\n')

    def test_suggest_config_without_ratings(self, cli_env):
        """Test that suggesting from an empty database exits with an error."""
        runner.invoke(app, ["init-db", "--config-path", cli_env["config"]])

        result = runner.invoke(app, ["suggest-config", "model", "--config-path", cli_env["config"]])

        assert result.exit_code == 1
        assert "No ratings stored" in result.output

    def test_clear_ratings_requires_confirmation(self, cli_env):
        """Test that clear-ratings refuses without --yes and clears with it."""
        assert run_sweep(cli_env).exit_code == 0

        refused = runner.invoke(app, ["clear-ratings", "--config-path", cli_env["config"]])
        cleared = runner.invoke(app, ["clear-ratings", "--yes", "--config-path", cli_env["config"]])
        exported = runner.invoke(app, ["export-ratings", "--config-path", cli_env["config"]])

        assert refused.exit_code == 1
        assert cleared.exit_code == 0, cleared.output
        assert json.loads(exported.output) == {"ratings": [], "history": []}

    def test_run_experiment_report_file(self, cli_env):
        """Test writing the text performance report limited to the best rows."""
        report_path = cli_env["dir"] / "report.txt"

        result = runner.invoke(
            app,
            [
                "run-experiment",
                cli_env["experiment"],
                "--config-path",
                cli_env["config"],
                "--report-file",
                str(report_path),
                "--top-n",
                "2",
            ],
        )

        assert result.exit_code == 0, result.output
        text = report_path.read_text(encoding="utf-8")
        assert "EXPERIMENT REPORT: cli sweep" in text
        assert "Comparisons: 6" in text
        assert "model=claude-3" not in text.split("EVALUATION SUMMARY")[0]

    def test_evolve_config(self, cli_env):
        """Test evolving from stored ratings and exporting the best as TypeScript."""
        assert run_sweep(cli_env).exit_code == 0
        output = cli_env["dir"] / "best.ts"

        result = runner.invoke(
            app,
            [
                "evolve-config",
                "model",
                "temperature",
                "--seed",
                "3",
                "--output-file",
                str(output),
                "--format",
                "typescript",
                "--config-path",
                cli_env["config"],
            ],
        )

        assert result.exit_code == 0, result.output
        assert "generations" in result.output
        text = output.read_text(encoding="utf-8")
        assert '"model": "gpt-4"' in text
        assert text.endswith("export type Config = typeof config;\n")

    def test_evolve_config_without_ratings(self, cli_env):
        """Test that evolving from an empty database exits with an error."""
        runner.invoke(app, ["init-db", "--config-path", cli_env["config"]])

        result = runner.invoke(app, ["evolve-config", "model", "--config-path", cli_env["config"]])

        assert result.exit_code == 1
        assert "Nothing to evolve" in result.output

    def test_deploy_config_with_backup(self, cli_env):
        """Test deploying the best configuration over an existing file."""
        assert run_sweep(cli_env).exit_code == 0
        target = cli_env["dir"] / "app.json"
        target.write_text('{"model": "old"}', encoding="utf-8")

        result = runner.invoke(
            app,
            [
                "deploy-config",
                "model",
                "temperature",
                "--target",
                str(target),
                "--backup-path",
                str(cli_env["dir"] / "app-{timestamp}.json"),
                "--require",
                "model=str",
                "--require",
                "temperature=number",
                "--include-metadata",
                "--config-path",
                cli_env["config"],
            ],
        )

        assert result.exit_code == 0, result.output
        deployed = json.loads(target.read_text(encoding="utf-8"))
        assert deployed["model"] == "gpt-4"
        assert deployed["_metadata"]["source"] == "paramarena"
        assert len(list(cli_env["dir"].glob("app-*.json"))) == 1

    def test_deploy_config_validation_failure(self, cli_env):
        """Test that a failed validation exits with an error and writes nothing."""
        assert run_sweep(cli_env).exit_code == 0
        target = cli_env["dir"] / "app.json"

        result = runner.invoke(
            app,
            [
                "deploy-config",
                "model",
                "--target",
                str(target),
                "--require",
                "max_tokens=int",
                "--config-path",
                cli_env["config"],
            ],
        )

        assert result.exit_code == 1
        assert "Missing required configuration key: max_tokens" in result.output
        assert not target.exists()
