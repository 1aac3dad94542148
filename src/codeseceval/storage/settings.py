"""The persisted settings document."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from codeseceval.config import Settings
from codeseceval.events import Signal
from codeseceval.storage import codec
from codeseceval.storage.cache import Cache
from codeseceval.storage.db import STORAGE_ERRORS
from codeseceval.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)

SETTINGS_KEY = "settings"
SETTINGS_CACHE_TTL = 3600.0


@dataclass
class SettingsEvents:
    settings_saved: Signal[Settings] = field(
        default_factory=lambda: Signal("settings_saved")
    )


class SettingsStore:
    """Loads and saves ``Settings`` through the cache and key-value store."""

    def __init__(self, kv: KeyValueStore, cache: Cache, defaults: Settings | None = None) -> None:
        self.events = SettingsEvents()
        self._kv = kv
        self._cache = cache
        self._defaults = defaults or Settings()

    async def load_settings(self) -> Settings:
        """Return stored settings, or the defaults when none are stored."""
        cached = self._cache.get(SETTINGS_KEY)
        if cached is not None:
            return Settings.from_dict(cached)
        try:
            text = await self._kv.get(SETTINGS_KEY)
            data = codec.loads(text) if text else None
        except STORAGE_ERRORS as e:
            logger.warning("Could not load settings, using defaults: %s", e)
            data = None
        if not isinstance(data, dict):
            return Settings.from_dict(self._defaults.to_dict())
        self._cache.set(SETTINGS_KEY, data, ttl=SETTINGS_CACHE_TTL)
        return Settings.from_dict(data)

    async def save_settings(self, settings: Settings) -> None:
        data = settings.to_dict()
        try:
            await self._kv.put(SETTINGS_KEY, codec.dumps(data))
        except STORAGE_ERRORS as e:
            logger.warning("Could not persist settings: %s", e)
        self._cache.set(SETTINGS_KEY, data, ttl=SETTINGS_CACHE_TTL)
        self.events.settings_saved.emit(settings)
