"""Tests for the SQLite storage layer."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from codeseceval.storage import codec
from codeseceval.storage.kv import MemoryKeyValueStore


def run_async(coro):
    """Helper to run async functions in sync tests."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path: Path):
    from codeseceval.storage.db import get_db

    conn = run_async(get_db(db_path))
    yield conn
    run_async(conn.close())


class TestSqliteKeyValueStore:
    def test_put_and_get(self, db):
        from codeseceval.storage.repos import SqliteKeyValueStore

        kv = SqliteKeyValueStore(db)
        run_async(kv.put("rule:SEC001", '{"id": "SEC001"}'))
        assert run_async(kv.get("rule:SEC001")) == '{"id": "SEC001"}'
        assert run_async(kv.get("rule:missing")) is None

    def test_upsert_keeps_insertion_order(self, db):
        from codeseceval.storage.repos import SqliteKeyValueStore

        kv = SqliteKeyValueStore(db)
        for key in ("history:a", "history:b", "history:c"):
            run_async(kv.put(key, "1"))
        run_async(kv.put("history:a", "2"))

        items = run_async(kv.items("history:"))
        assert items == [("history:a", "2"), ("history:b", "1"), ("history:c", "1")]

    def test_prefix_is_literal(self, db):
        from codeseceval.storage.repos import SqliteKeyValueStore

        kv = SqliteKeyValueStore(db)
        run_async(kv.put("rule:%", "x"))
        run_async(kv.put("ruleset:web", "y"))
        run_async(kv.put("result:1", "z"))

        assert [k for k, _ in run_async(kv.items("rule:"))] == ["rule:%"]
        assert len(run_async(kv.items())) == 3

    def test_delete(self, db):
        from codeseceval.storage.repos import SqliteKeyValueStore

        kv = SqliteKeyValueStore(db)
        run_async(kv.put("k", "v"))
        assert run_async(kv.delete("k")) is True
        assert run_async(kv.delete("k")) is False
        assert run_async(kv.get("k")) is None

    def test_survives_reopen(self, db_path: Path):
        from codeseceval.storage.db import get_db
        from codeseceval.storage.repos import SqliteKeyValueStore

        conn = run_async(get_db(db_path))
        run_async(SqliteKeyValueStore(conn).put("settings", "{}"))
        run_async(conn.close())

        conn = run_async(get_db(db_path))
        try:
            assert run_async(SqliteKeyValueStore(conn).get("settings")) == "{}"
        finally:
            run_async(conn.close())


class TestSchema:
    def test_schema_version_recorded(self, db):
        from codeseceval.storage.db import SCHEMA_VERSION

        cursor = run_async(db.execute("SELECT version FROM schema_version"))
        row = run_async(cursor.fetchone())
        assert row[0] == SCHEMA_VERSION

    def test_newer_schema_rejected(self, db_path: Path):
        from codeseceval.storage.db import get_db

        conn = run_async(get_db(db_path))
        run_async(conn.execute("UPDATE schema_version SET version = 999"))
        run_async(conn.commit())
        run_async(conn.close())

        with pytest.raises(RuntimeError, match="newer than supported"):
            run_async(get_db(db_path))


class TestMemoryKeyValueStore:
    def test_items_by_prefix_in_insertion_order(self):
        kv = MemoryKeyValueStore()
        run_async(kv.put("history:b", "1"))
        run_async(kv.put("result:b", "2"))
        run_async(kv.put("history:a", "3"))
        run_async(kv.put("history:b", "4"))
        assert run_async(kv.items("history:")) == [("history:b", "4"), ("history:a", "3")]


class TestCodec:
    def test_encodes_enums_sets_and_to_dict(self):
        from codeseceval.rules.models import Severity
        from codeseceval.scanner.models import ScanConfig

        text = codec.dumps(
            {
                "severity": Severity.HIGH,
                "langs": frozenset({"python", "javascript"}),
                "config": ScanConfig(target_path="/src"),
            }
        )
        data = codec.loads(text)
        assert data["severity"] == "high"
        assert data["langs"] == ["javascript", "python"]
        assert data["config"]["target_path"] == "/src"

    def test_byte_size_counts_utf8(self):
        assert codec.byte_size("é") == len('"\\u00e9"')
