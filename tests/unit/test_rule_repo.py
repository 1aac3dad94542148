"""Tests for rule persistence through the key-value store."""

from __future__ import annotations

import asyncio
import logging

import aiosqlite

from codeseceval.config import Settings
from codeseceval.rules.loader import rule_to_dict
from codeseceval.rules.repo import RuleRepo
from codeseceval.rules.store import RuleStore
from codeseceval.storage import codec
from codeseceval.storage.cache import Cache
from codeseceval.storage.kv import MemoryKeyValueStore
from codeseceval.storage.settings import SettingsStore


class BrokenKeyValueStore:
    """Every operation fails the way a locked or missing database does."""

    async def get(self, key: str) -> str | None:
        raise aiosqlite.OperationalError("database is locked")

    async def put(self, key: str, value: str) -> None:
        raise aiosqlite.OperationalError("database is locked")

    async def delete(self, key: str) -> bool:
        raise aiosqlite.OperationalError("database is locked")

    async def items(self, prefix: str = "") -> list[tuple[str, str]]:
        raise aiosqlite.OperationalError("database is locked")


def test_save_and_restore(rule_factory):
    kv = MemoryKeyValueStore()
    store = RuleStore()
    store.add_rule(rule_factory(id="MINE"))
    store.delete_rule_set("critical-only")
    asyncio.run(RuleRepo(kv).save(store))

    again = RuleStore()
    assert asyncio.run(RuleRepo(kv).restore(again)) == 11
    assert again.get_rule("MINE") is not None
    assert again.get_rule_set("critical-only") is None


def test_failed_save_is_logged(rule_factory, caplog):
    store = RuleStore()
    store.add_rule(rule_factory(id="MINE"))

    with caplog.at_level(logging.WARNING, logger="codeseceval.rules.repo"):
        asyncio.run(RuleRepo(BrokenKeyValueStore()).save(store))

    assert "Could not persist rule records" in caplog.text
    assert store.get_rule("MINE") is not None


def test_failed_restore_keeps_builtins(caplog):
    store = RuleStore()

    with caplog.at_level(logging.WARNING, logger="codeseceval.rules.repo"):
        restored = asyncio.run(RuleRepo(BrokenKeyValueStore()).restore(store))

    assert restored == 0
    assert len(store.all_rules()) == 10
    assert len(store.list_rule_sets()) == 4
    assert "Could not read rule records" in caplog.text


def test_corrupt_records_are_skipped(rule_factory):
    kv = MemoryKeyValueStore()
    good = rule_to_dict(rule_factory(id="MINE"))

    async def seed():
        await kv.put("rule:JUNK", "not json")
        await kv.put("rule:LIST", "[1, 2]")
        await kv.put("rule:TYPED", codec.dumps(dict(good, id="TYPED", tags=5)))
        await kv.put("rule:MINE", codec.dumps(good))
        await kv.put("ruleset:bad", codec.dumps({"id": "bad", "name": "Bad", "created_at": "x"}))
        await kv.put("category:bad", "42")

    asyncio.run(seed())
    store = RuleStore()
    assert asyncio.run(RuleRepo(kv).restore(store)) == 1
    assert store.get_rule("MINE") is not None
    assert store.get_rule("TYPED") is None
    # An unreadable rule-set table falls back to the built-in sets
    assert len(store.list_rule_sets()) == 4


def test_settings_save_survives_storage_failure():
    settings_store = SettingsStore(BrokenKeyValueStore(), Cache())
    saved = []
    settings_store.events.settings_saved.connect(saved.append)

    asyncio.run(settings_store.save_settings(Settings(max_scan_depth=4)))

    assert asyncio.run(settings_store.load_settings()).max_scan_depth == 4
    assert len(saved) == 1
