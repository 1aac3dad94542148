"""Application context — builds one of each component and owns their lifetimes."""

from __future__ import annotations

import asyncio
import contextlib
import logging

import aiosqlite

from codeseceval.config import SecEvalConfig, Settings
from codeseceval.rules.repo import RuleRepo
from codeseceval.rules.store import RuleStore
from codeseceval.scanner.discovery import FileSource
from codeseceval.scanner.engine import ScanOrchestrator
from codeseceval.scanner.matcher import MatchingPipeline
from codeseceval.scanner.models import ScanConfig, ScanKind
from codeseceval.storage.cache import Cache
from codeseceval.storage.db import get_db
from codeseceval.storage.history import HistoryStore
from codeseceval.storage.kv import KeyValueStore, MemoryKeyValueStore
from codeseceval.storage.repos import SqliteKeyValueStore
from codeseceval.storage.settings import SettingsStore

logger = logging.getLogger(__name__)


class AppContext:
    """Explicit wiring of the rule store, orchestrator, cache and history.

    Consumers receive the context (or one of its components); nothing is
    reachable through module-level globals.
    """

    def __init__(
        self,
        config: SecEvalConfig,
        kv: KeyValueStore,
        settings: Settings,
        db: aiosqlite.Connection | None = None,
        file_source: FileSource | None = None,
        pipeline: MatchingPipeline | None = None,
    ) -> None:
        self.config = config
        self.settings = settings
        self.kv = kv
        self._db = db
        self.cache = Cache(max_bytes=settings.cache_max_bytes)
        self.settings_store = SettingsStore(kv, self.cache, defaults=config.settings)
        self.history = HistoryStore(kv, self.cache, max_records=settings.max_history)
        self.rules = RuleStore()
        self.rule_repo = RuleRepo(kv)
        self.orchestrator = ScanOrchestrator(
            rules=self.rules,
            results=self.history,
            file_source=file_source,
            pipeline=pipeline,
            max_concurrent_scans=settings.max_concurrent_scans,
            default_timeout=settings.scan_timeout,
        )
        self._housekeeping: asyncio.Task | None = None
        _wire_event_logging(self)

    @classmethod
    async def create(
        cls,
        config: SecEvalConfig | None = None,
        in_memory: bool = False,
        **kwargs,
    ) -> AppContext:
        """Open storage, load persisted state and return a ready context."""
        config = config or SecEvalConfig.load()
        db = None
        if in_memory:
            kv: KeyValueStore = MemoryKeyValueStore()
        else:
            db = await get_db(config.db_path)
            kv = SqliteKeyValueStore(db)

        bootstrap = SettingsStore(kv, Cache(), defaults=config.settings)
        settings = await bootstrap.load_settings()

        ctx = cls(config, kv, settings, db=db, **kwargs)
        await ctx.rule_repo.restore(ctx.rules)
        await ctx.history.load()
        return ctx

    def scan_config(self, target_path: str, **overrides) -> ScanConfig:
        """A ScanConfig for ``target_path`` filled from the current settings."""
        s = self.settings
        exclude = tuple(s.default_exclude_paths) + tuple(overrides.pop("exclude_paths", ()))
        values = {
            "kind": ScanKind.QUICK,
            "include_test_files": s.include_test_files,
            "max_depth": s.max_scan_depth,
            "timeout": s.scan_timeout,
            "max_file_size": int(s.max_file_size_mb * 1024 * 1024),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ScanConfig(target_path=target_path, exclude_paths=exclude, **values)

    async def save_rules(self) -> None:
        await self.rule_repo.save(self.rules)

    async def update_settings(self, **changes) -> Settings:
        """Persist new settings and apply the ones that take effect live."""
        settings = self.settings.updated(**changes)
        await self.settings_store.save_settings(settings)
        self.settings = settings
        self.orchestrator.set_max_concurrent_scans(settings.max_concurrent_scans)
        self.cache.max_bytes = settings.cache_max_bytes
        self.history.max_records = settings.max_history
        return settings

    async def run_housekeeping(self) -> None:
        """Purge expired cache entries and history past the retention window."""
        expired = self.cache.purge_expired()
        purged = await self.history.purge_older_than(self.settings.retention_days)
        logger.info(
            "Housekeeping: %d expired cache entries, %d old history records",
            expired,
            purged,
        )

    def start_housekeeping(self) -> None:
        if self._housekeeping is None:
            self._housekeeping = asyncio.get_running_loop().create_task(
                self._housekeeping_loop(), name="housekeeping"
            )

    async def _housekeeping_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.housekeeping_interval)
            try:
                await self.run_housekeeping()
            except Exception:
                logger.exception("Housekeeping pass failed")

    async def close(self) -> None:
        if self._housekeeping is not None:
            self._housekeeping.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._housekeeping
            self._housekeeping = None
        await self.orchestrator.shutdown()
        if self._db is not None:
            await self._db.close()
            self._db = None


def _wire_event_logging(ctx: AppContext) -> None:
    """Subscribe the event logger to every mutating notification."""
    events = ctx.orchestrator.events
    events.scan_started.connect(
        lambda s: logger.info("scan_started %s target=%s", s.id, s.config.target_path)
    )
    events.scan_completed.connect(
        lambda r: logger.info(
            "scan_completed %s findings=%d", r.scan_id, len(r.findings)
        )
    )
    events.scan_failed.connect(
        lambda f: logger.warning("scan_failed %s: %s", f.session_id, f.message)
    )
    events.scan_cancelled.connect(
        lambda s: logger.info("scan_cancelled %s: %s", s.id, s.error)
    )

    rule_events = ctx.rules.events
    rule_events.rule_added.connect(lambda r: logger.info("rule_added %s", r.id))
    rule_events.rule_updated.connect(lambda r: logger.info("rule_updated %s", r.id))
    rule_events.rule_deleted.connect(lambda rid: logger.info("rule_deleted %s", rid))
    rule_events.rule_set_added.connect(lambda s: logger.info("rule_set_added %s", s.id))
    rule_events.rule_set_updated.connect(
        lambda s: logger.info("rule_set_updated %s", s.id)
    )
    rule_events.rule_set_deleted.connect(
        lambda sid: logger.info("rule_set_deleted %s", sid)
    )

    ctx.history.events.history_added.connect(
        lambda h: logger.info("history_added %s", h.id)
    )
    ctx.history.events.history_removed.connect(
        lambda hid: logger.info("history_removed %s", hid)
    )
    ctx.settings_store.events.settings_saved.connect(
        lambda _: logger.info("settings_saved")
    )
