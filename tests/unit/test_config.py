"""Tests for settings and configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from codeseceval.config import SecEvalConfig, Settings
from codeseceval.errors import ValidationError


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.max_concurrent_scans == 3
        assert s.scan_timeout == 1800.0
        assert s.max_scan_depth == 10
        assert s.include_test_files is False
        assert s.default_exclude_paths == ["node_modules", "dist", "build", ".git"]
        assert s.max_history == 100

    def test_concurrency_clamped(self):
        assert Settings(max_concurrent_scans=0).max_concurrent_scans == 1
        assert Settings(max_concurrent_scans=99).max_concurrent_scans == 10

    def test_from_dict_ignores_unknown(self):
        s = Settings.from_dict({"max_scan_depth": 4, "theme": "dark"})
        assert s.max_scan_depth == 4

    def test_round_trip(self):
        s = Settings(retention_days=7, enable_custom_rules=False)
        assert Settings.from_dict(s.to_dict()) == s

    def test_updated(self):
        s = Settings().updated(max_concurrent_scans=5)
        assert s.max_concurrent_scans == 5

    def test_updated_rejects_unknown_key(self):
        with pytest.raises(ValidationError, match="Unknown settings"):
            Settings().updated(colour="blue")

    def test_updated_rejects_bad_value(self):
        with pytest.raises(ValidationError):
            Settings().updated(max_concurrent_scans="many")


class TestLoad:
    @pytest.fixture(autouse=True)
    def _isolate(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
        for name in (
            "CODESECEVAL_MAX_SCANS",
            "CODESECEVAL_WEB_PORT",
            "CODESECEVAL_CACHE_MB",
            "CODESECEVAL_RETENTION_DAYS",
        ):
            monkeypatch.delenv(name, raising=False)

    def test_xdg_paths(self, tmp_path: Path):
        config = SecEvalConfig.load()
        assert config.data_dir == tmp_path / "data" / "codeseceval"
        assert config.db_path == tmp_path / "data" / "codeseceval" / "codeseceval.db"
        assert config.web_host == "127.0.0.1"
        assert config.web_port == 8471

    def test_config_file(self, tmp_path: Path):
        config_dir = tmp_path / "config" / "codeseceval"
        config_dir.mkdir(parents=True)
        (config_dir / "config.yaml").write_text(
            "web_port: 9000\nsettings:\n  max_scan_depth: 3\n  retention_days: 5\n"
        )
        config = SecEvalConfig.load()
        assert config.web_port == 9000
        assert config.settings.max_scan_depth == 3
        assert config.settings.retention_days == 5

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("CODESECEVAL_MAX_SCANS", "42")
        monkeypatch.setenv("CODESECEVAL_WEB_PORT", "9100")
        monkeypatch.setenv("CODESECEVAL_CACHE_MB", "2")
        monkeypatch.setenv("CODESECEVAL_RETENTION_DAYS", "3")
        config = SecEvalConfig.load()
        assert config.settings.max_concurrent_scans == 10
        assert config.web_port == 9100
        assert config.settings.cache_max_bytes == 2 * 1024 * 1024
        assert config.settings.retention_days == 3
