"""Tests for CLI commands using Click's CliRunner."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from codeseceval.cli import main


@pytest.fixture(autouse=True)
def _isolate(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))


def test_main_help():
    runner = CliRunner()
    result = runner.invoke(main, ["--help"])
    assert result.exit_code == 0
    assert "CodeSecEval" in result.output
    for command in ("scan", "rules", "history", "settings", "server"):
        assert command in result.output


def test_main_version():
    runner = CliRunner()
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_scan_help():
    runner = CliRunner()
    result = runner.invoke(main, ["scan", "--help"])
    assert result.exit_code == 0
    assert "DIRECTORY" in result.output
    assert "--rule-set" in result.output


def test_scan_clean_project(tmp_path: Path):
    src = tmp_path / "clean"
    src.mkdir()
    (src / "app.js").write_text("const a = 1;\n")

    runner = CliRunner()
    result = runner.invoke(main, ["--ephemeral", "scan", str(src)])
    assert result.exit_code == 0, result.output
    assert "No findings." in result.output


def test_scan_critical_finding_exits_nonzero(project_dir: Path):
    runner = CliRunner()
    result = runner.invoke(main, ["--ephemeral", "scan", str(project_dir)])
    assert result.exit_code == 1
    assert "critical finding(s)" in result.output


def test_scan_unknown_rule_set(project_dir: Path):
    runner = CliRunner()
    result = runner.invoke(
        main, ["--ephemeral", "scan", str(project_dir), "--rule-set", "nope"]
    )
    assert result.exit_code == 1
    assert "NotFound" in result.output


def test_rules_show():
    runner = CliRunner()
    result = runner.invoke(main, ["--ephemeral", "rules", "show", "SEC005"])
    assert result.exit_code == 0
    assert "id: SEC005" in result.output
    assert "CWE-95" in result.output


def test_rules_stats():
    runner = CliRunner()
    result = runner.invoke(main, ["--ephemeral", "rules", "stats"])
    assert result.exit_code == 0
    assert "10 rules: 10 enabled" in result.output


def test_rules_delete_builtin_is_refused():
    runner = CliRunner()
    result = runner.invoke(main, ["--ephemeral", "rules", "delete", "SEC001"])
    assert result.exit_code == 1
    assert "Protected" in result.output


def test_rules_disable_persists():
    runner = CliRunner()
    result = runner.invoke(main, ["rules", "disable", "SEC004"])
    assert result.exit_code == 0
    assert "Disabled 1 rule(s)" in result.output

    result = runner.invoke(main, ["rules", "stats"])
    assert "9 enabled, 1 disabled" in result.output


def test_rules_export_import(tmp_path: Path):
    bundle = tmp_path / "bundle.json"
    runner = CliRunner()
    result = runner.invoke(main, ["--ephemeral", "rules", "export", "-o", str(bundle)])
    assert result.exit_code == 0
    assert bundle.is_file()

    result = runner.invoke(main, ["--ephemeral", "rules", "import", str(bundle)])
    assert result.exit_code == 0
    assert "skipped 10" in result.output


def test_settings_set_and_show():
    runner = CliRunner()
    result = runner.invoke(main, ["settings", "set", "max_concurrent_scans", "4"])
    assert result.exit_code == 0
    assert "max_concurrent_scans = 4" in result.output


def test_settings_set_unknown_key():
    runner = CliRunner()
    result = runner.invoke(main, ["settings", "set", "colour", "blue"])
    assert result.exit_code == 2


def test_history_empty():
    runner = CliRunner()
    result = runner.invoke(main, ["--ephemeral", "history", "list"])
    assert result.exit_code == 0
    assert "No scans recorded yet." in result.output
