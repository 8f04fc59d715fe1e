"""Tests for the taskroute CLI.

Covers every command, --help output and invalid arguments via
CliRunner.
"""

from __future__ import annotations

import json

from typer.testing import CliRunner

from taskroute import __version__
from taskroute.cli import app

# NO_COLOR=1 keeps Rich from injecting ANSI codes into the output.
# COLUMNS=200 prevents wrapping that could split table cells.
runner = CliRunner(env={"NO_COLOR": "1", "COLUMNS": "200"})


def _write_rules(tmp_path, priority: int = 150):
    path = tmp_path / "rules.toml"
    path.write_text(
        '[[rules]]\n'
        'id = "docs-remote"\n'
        'name = "Docs Remote"\n'
        f'priority = {priority}\n'
        'action = "codespace"\n'
        'reason = "Docs build needs the remote toolchain"\n'
        'condition = { kind = "compare", field = "task.type", op = "eq", value = "documentation" }\n'
    )
    return path


class TestAppBasics:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("route", "record", "history", "decisions", "rules", "config"):
            assert command in result.output


class TestRouteCommand:
    def test_json_output(self):
        result = runner.invoke(app, ["route", "Write docs", "--type", "documentation", "--json"])
        assert result.exit_code == 0, result.output
        decision = json.loads(result.output)
        assert decision["mode"] == "local"
        assert decision["rule_id"] == "documentation-local"

    def test_gpu_goes_remote(self):
        result = runner.invoke(app, ["route", "Train", "--id", "train-1", "--gpu", "--json"])
        assert result.exit_code == 0, result.output
        decision = json.loads(result.output)
        assert decision["task_id"] == "train-1"
        assert decision["mode"] == "codespace"

    def test_panel_output(self):
        result = runner.invoke(app, ["route", "Fix typo", "--label", "quick-fix"])
        assert result.exit_code == 0, result.output
        assert "Routing Decision" in result.output
        assert "quick-fix-local" in result.output
        assert "Alternatives" in result.output

    def test_system_load_options(self):
        result = runner.invoke(app, ["route", "Build", "--system-cpu", "95", "--json"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["rule_id"] == "system-overload"

    def test_extra_rules(self, tmp_path):
        rules = _write_rules(tmp_path)
        result = runner.invoke(app, [
            "route", "Docs", "--type", "documentation", "--rules", str(rules), "--json",
        ])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["rule_id"] == "docs-remote"

    def test_invalid_type(self):
        result = runner.invoke(app, ["route", "x", "--type", "chores"])
        assert result.exit_code == 1
        assert "Invalid task type" in result.output

    def test_invalid_duration(self):
        result = runner.invoke(app, ["route", "x", "--duration", "0"])
        assert result.exit_code == 1
        assert "Invalid task" in result.output

    def test_missing_rules_file(self, tmp_path):
        result = runner.invoke(app, ["route", "x", "--rules", str(tmp_path / "none.toml")])
        assert result.exit_code == 1
        assert "Error loading configuration" in result.output


class TestPersistenceCommands:
    def test_route_then_decisions(self, tmp_path):
        db = str(tmp_path / "routes.db")
        runner.invoke(app, ["route", "Docs", "--id", "d-1", "--type", "documentation", "--db", db])
        runner.invoke(app, ["route", "Train", "--id", "g-1", "--gpu", "--db", db])

        result = runner.invoke(app, ["decisions", "--db", db])
        assert result.exit_code == 0, result.output
        assert "d-1" in result.output
        assert "g-1" in result.output

        remote = runner.invoke(app, ["decisions", "--db", db, "--mode", "codespace"])
        assert "g-1" in remote.output
        assert "d-1" not in remote.output

    def test_decisions_empty(self, tmp_path):
        result = runner.invoke(app, ["decisions", "--db", str(tmp_path / "routes.db")])
        assert result.exit_code == 0
        assert "No decisions found" in result.output

    def test_record_and_history(self, tmp_path):
        db = str(tmp_path / "routes.db")
        result = runner.invoke(app, [
            "record", "bugfix", "local", "--failure", "--duration", "12",
            "--reason", "flaky test", "--db", db,
        ])
        assert result.exit_code == 0, result.output
        assert "Recorded" in result.output
        assert "local 64%" in result.output

        history = runner.invoke(app, ["history", "--db", db])
        assert history.exit_code == 0, history.output
        assert "bugfix" in history.output
        assert "64%" in history.output

    def test_record_invalid_mode(self, tmp_path):
        result = runner.invoke(app, [
            "record", "bugfix", "cloud", "--duration", "5", "--db", str(tmp_path / "r.db"),
        ])
        assert result.exit_code == 1
        assert "Invalid mode" in result.output

    def test_history_empty(self, tmp_path):
        result = runner.invoke(app, ["history", "--db", str(tmp_path / "routes.db")])
        assert result.exit_code == 0
        assert "No history recorded yet" in result.output


class TestRulesCommands:
    def test_list(self):
        result = runner.invoke(app, ["rules", "list"])
        assert result.exit_code == 0, result.output
        assert "gpu-required" in result.output
        assert "default-local" in result.output
        assert "12 rules registered" in result.output

    def test_list_with_extra_rules(self, tmp_path):
        result = runner.invoke(app, ["rules", "list", "--rules", str(_write_rules(tmp_path))])
        assert result.exit_code == 0, result.output
        assert "docs-remote" in result.output
        assert "13 rules registered" in result.output

    def test_check_valid(self, tmp_path):
        result = runner.invoke(app, ["rules", "check", str(_write_rules(tmp_path, 7))])
        assert result.exit_code == 0
        assert "docs-remote (priority 7)" in result.output

    def test_check_invalid(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text('[[rules]]\nid = "x"\n')
        result = runner.invoke(app, ["rules", "check", str(path)])
        assert result.exit_code == 1
        assert "Invalid rules file" in result.output


class TestConfigCommands:
    def test_show_defaults(self):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0, result.output
        assert "Codespace Machine" in result.output
        assert "standardLinux" in result.output
        assert "$0.18/h" in result.output

    def test_show_applies_env_overrides(self):
        result = runner.invoke(
            app, ["config", "show"],
            env={"TASKROUTE_CODESPACE_MACHINE": "largePremiumLinux"},
        )
        assert result.exit_code == 0, result.output
        assert "largePremiumLinux" in result.output
        assert "$0.36/h" in result.output

    def test_path(self):
        result = runner.invoke(app, ["config", "path"])
        assert result.exit_code == 0
        assert "defaults.toml" in result.output
