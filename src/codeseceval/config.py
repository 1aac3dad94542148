"""Global configuration — XDG paths, env vars, defaults."""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from codeseceval.errors import ValidationError

logger = logging.getLogger(__name__)

MIN_CONCURRENT_SCANS = 1
MAX_CONCURRENT_SCANS = 10


def _default_data_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "codeseceval"
    return Path.home() / ".local" / "share" / "codeseceval"


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "codeseceval"
    return Path.home() / ".config" / "codeseceval"


def clamp_concurrency(value: int) -> int:
    return max(MIN_CONCURRENT_SCANS, min(MAX_CONCURRENT_SCANS, int(value)))


@dataclass
class Settings:
    """Engine tunables. Persisted as the single settings document."""

    max_concurrent_scans: int = 3
    scan_timeout: float = 1800.0
    max_scan_depth: int = 10
    include_test_files: bool = False
    default_exclude_paths: list[str] = field(
        default_factory=lambda: ["node_modules", "dist", "build", ".git"]
    )
    max_file_size_mb: float = 1.0
    cache_max_bytes: int = 100 * 1024 * 1024
    max_history: int = 100
    retention_days: int = 30
    housekeeping_interval: float = 86400.0
    enable_custom_rules: bool = True

    def __post_init__(self) -> None:
        self.max_concurrent_scans = clamp_concurrency(self.max_concurrent_scans)

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> Settings:
        """Build settings from a mapping, ignoring unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning("Ignoring unknown settings: %s", ", ".join(sorted(unknown)))
        return cls(**{k: v for k, v in data.items() if k in known})

    def updated(self, **changes) -> Settings:
        unknown = set(changes) - set(self.to_dict())
        if unknown:
            raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")
        try:
            return self.from_dict({**self.to_dict(), **changes})
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid settings value: {e}") from e


@dataclass
class SecEvalConfig:
    """Application-wide configuration."""

    data_dir: Path = field(default_factory=_default_data_dir)
    config_dir: Path = field(default_factory=_default_config_dir)
    web_host: str = "127.0.0.1"  # Hardcoded, never 0.0.0.0
    web_port: int = 8471
    verbose: bool = False
    settings: Settings = field(default_factory=Settings)

    @property
    def db_path(self) -> Path:
        return self.data_dir / "codeseceval.db"

    @classmethod
    def load(cls) -> SecEvalConfig:
        """Load config from config.yaml and environment variables with XDG defaults."""
        config = cls()

        config_file = config.config_dir / "config.yaml"
        if config_file.is_file():
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            if not isinstance(data, dict):
                raise ValueError(f"{config_file} must contain a mapping")
            if "web_port" in data:
                config.web_port = int(data.pop("web_port"))
            config.settings = Settings.from_dict(data.get("settings", {}))

        env_scans = os.environ.get("CODESECEVAL_MAX_SCANS")
        if env_scans:
            config.settings.max_concurrent_scans = clamp_concurrency(int(env_scans))

        env_port = os.environ.get("CODESECEVAL_WEB_PORT")
        if env_port:
            config.web_port = int(env_port)

        env_cache = os.environ.get("CODESECEVAL_CACHE_MB")
        if env_cache:
            config.settings.cache_max_bytes = int(float(env_cache) * 1024 * 1024)

        env_retention = os.environ.get("CODESECEVAL_RETENTION_DAYS")
        if env_retention:
            config.settings.retention_days = int(env_retention)

        return config
