"""Scan history ledger and stored scan results."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import PurePath

from codeseceval.events import Signal
from codeseceval.scanner.models import ScanResult
from codeseceval.storage import codec
from codeseceval.storage.cache import Cache
from codeseceval.storage.db import STORAGE_ERRORS
from codeseceval.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 100
RESULT_CACHE_TTL = 3600.0

_HISTORY_PREFIX = "history:"
_RESULT_PREFIX = "result:"


@dataclass(frozen=True)
class HistoryRecord:
    """Summary of one completed scan, newest first in the ledger."""

    id: str
    target_path: str
    project_name: str
    scan_kind: str
    status: str
    start_time: float
    end_time: float | None
    duration: float
    finding_count: int
    by_severity: dict[str, int] = field(default_factory=dict)
    config: dict = field(default_factory=dict)
    result_key: str = ""
    error_message: str = ""

    @classmethod
    def from_result(cls, result: ScanResult) -> HistoryRecord:
        target = result.config.target_path
        return cls(
            id=result.scan_id,
            target_path=target,
            project_name=PurePath(target.rstrip("/\\") or target).name or target,
            scan_kind=result.config.kind.value,
            status=result.status.value,
            start_time=result.start_time,
            end_time=result.end_time,
            duration=result.duration,
            finding_count=len(result.findings),
            by_severity=dict(result.statistics.by_severity),
            config=result.config.to_dict(),
            result_key=_RESULT_PREFIX + result.scan_id,
            error_message=result.errors[0] if result.errors else "",
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "target_path": self.target_path,
            "project_name": self.project_name,
            "scan_kind": self.scan_kind,
            "status": self.status,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "finding_count": self.finding_count,
            "by_severity": dict(self.by_severity),
            "config": dict(self.config),
            "result_key": self.result_key,
            "error_message": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: dict) -> HistoryRecord:
        return cls(**data)


@dataclass
class HistoryEvents:
    history_added: Signal[HistoryRecord] = field(
        default_factory=lambda: Signal("history_added")
    )
    history_removed: Signal[str] = field(
        default_factory=lambda: Signal("history_removed")
    )


class HistoryStore:
    """Bounded, newest-first ledger of completed scans.

    Each record is persisted as ``history:<id>``; the full result it
    references lives under ``result:<id>`` and is cached for an hour.
    Dropping a record, by cap, retention or request, releases its result.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        cache: Cache,
        max_records: int = DEFAULT_MAX_HISTORY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_records < 1:
            raise ValueError("max_records must be at least 1")
        self.events = HistoryEvents()
        self.max_records = max_records
        self._kv = kv
        self._cache = cache
        self._clock = clock
        self._records: list[HistoryRecord] = []
        self._lock = asyncio.Lock()

    async def load(self) -> int:
        """Read persisted records. Returns how many were loaded."""
        try:
            rows = await self._kv.items(_HISTORY_PREFIX)
        except STORAGE_ERRORS as e:
            logger.warning("Could not load scan history: %s", e)
            return 0

        records: list[HistoryRecord] = []
        for key, text in rows:
            try:
                records.append(HistoryRecord.from_dict(codec.loads(text)))
            except (json.JSONDecodeError, TypeError) as e:
                logger.warning("Skipping corrupt history record %s: %s", key, e)
        # Stored oldest first; the ledger is newest first
        records.reverse()
        async with self._lock:
            self._records = records
            overflow = self._records[self.max_records :]
            del self._records[self.max_records :]
        for record in overflow:
            await self._release(record)
        return len(self._records)

    async def add_history(self, record: HistoryRecord) -> list[HistoryRecord]:
        """Prepend a record. Returns the records evicted by the cap."""
        key = _HISTORY_PREFIX + record.id
        async with self._lock:
            replaced = self.get_history(record.id) is not None
            self._records = [r for r in self._records if r.id != record.id]
            self._records.insert(0, record)
            evicted = self._records[self.max_records :]
            del self._records[self.max_records :]
            if replaced:
                # Storage keeps first-insertion order on update
                await self._delete(key)
            await self._write(key, record.to_dict())

        for old in evicted:
            logger.info("History cap reached, dropping scan %s", old.id)
            await self._release(old)
            self.events.history_removed.emit(old.id)
        self.events.history_added.emit(record)
        return evicted

    def get_history(self, record_id: str) -> HistoryRecord | None:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def list_history(self) -> list[HistoryRecord]:
        return list(self._records)

    async def remove_history(self, record_id: str) -> bool:
        async with self._lock:
            record = self.get_history(record_id)
            if record is None:
                return False
            self._records.remove(record)
        await self._release(record)
        self.events.history_removed.emit(record_id)
        return True

    async def purge_older_than(self, max_age_days: float) -> int:
        """Drop records that started more than ``max_age_days`` ago."""
        cutoff = self._clock() - max_age_days * 86400
        async with self._lock:
            stale = [r for r in self._records if r.start_time < cutoff]
            self._records = [r for r in self._records if r.start_time >= cutoff]
        for record in stale:
            await self._release(record)
            self.events.history_removed.emit(record.id)
        if stale:
            logger.info("Purged %d history records older than %g days", len(stale), max_age_days)
        return len(stale)

    # --- Results ---

    async def save_result(self, result: ScanResult) -> HistoryRecord:
        """Store a completed result and add its history record."""
        key = _RESULT_PREFIX + result.scan_id
        await self._write(key, result.to_dict())
        self._cache.set(key, result, ttl=RESULT_CACHE_TTL)
        record = HistoryRecord.from_result(result)
        await self.add_history(record)
        return record

    async def load_result(self, scan_id: str) -> ScanResult | None:
        """Fetch a stored result through the cache. Storage errors read as a miss."""
        key = _RESULT_PREFIX + scan_id
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        try:
            text = await self._kv.get(key)
            if text is None:
                return None
            result = ScanResult.from_dict(codec.loads(text))
        except STORAGE_ERRORS as e:
            logger.warning("Could not load result %s: %s", scan_id, e)
            return None
        self._cache.set(key, result, ttl=RESULT_CACHE_TTL)
        return result

    async def delete_result(self, scan_id: str) -> bool:
        """Remove a scan's history record and its stored result."""
        return await self.remove_history(scan_id)

    async def _release(self, record: HistoryRecord) -> None:
        """Delete a record and the artifacts it references."""
        self._cache.delete(record.result_key)
        for key in (_HISTORY_PREFIX + record.id, record.result_key):
            if not key:
                continue
            await self._delete(key)

    async def _delete(self, key: str) -> None:
        try:
            await self._kv.delete(key)
        except STORAGE_ERRORS as e:
            logger.warning("Could not delete %s: %s", key, e)

    async def _write(self, key: str, value: dict) -> None:
        try:
            await self._kv.put(key, codec.dumps(value))
        except STORAGE_ERRORS as e:
            logger.warning("Could not persist %s: %s", key, e)
