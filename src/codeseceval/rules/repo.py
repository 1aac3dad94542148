"""Persist rule and rule-set records through the key-value store."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from codeseceval.errors import ValidationError
from codeseceval.rules.loader import (
    category_from_dict,
    category_to_dict,
    rule_from_dict,
    rule_set_from_dict,
    rule_set_to_dict,
    rule_to_dict,
)
from codeseceval.rules.store import RuleStore
from codeseceval.storage import codec
from codeseceval.storage.db import STORAGE_ERRORS
from codeseceval.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

RULE_PREFIX = "rule:"
RULE_SET_PREFIX = "ruleset:"
CATEGORY_PREFIX = "category:"


class RuleRepo:
    """Persists rules, rule sets and categories.

    One record each: ``rule:<id>``, ``ruleset:<id>`` and ``category:<id>``.
    """

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    async def save(self, store: RuleStore) -> None:
        """Write every record, deleting the ones no longer present.

        A storage failure is logged and leaves the in-memory store as the
        source of truth until the next successful save.
        """
        for prefix, records in (
            (RULE_PREFIX, {r.id: rule_to_dict(r) for r in store.all_rules()}),
            (RULE_SET_PREFIX, {s.id: rule_set_to_dict(s) for s in store.list_rule_sets()}),
            (CATEGORY_PREFIX, {c.id: category_to_dict(c) for c in store.list_categories()}),
        ):
            try:
                await self._sync(prefix, records)
            except STORAGE_ERRORS as e:
                logger.warning("Could not persist %s records: %s", prefix.rstrip(":"), e)

    async def restore(self, store: RuleStore) -> int:
        """Apply stored records on top of the built-in catalogue."""
        rules = await self._load(RULE_PREFIX, rule_from_dict)
        rule_sets = await self._load(RULE_SET_PREFIX, rule_set_from_dict)
        store.restore(rules, rule_sets)
        for category in await self._load(CATEGORY_PREFIX, category_from_dict):
            if store.get_category(category.id) is None:
                store.add_category(category)
        return len(rules)

    async def _load(self, prefix: str, parse: Callable[[dict], T]) -> list[T]:
        """Parse the stored records under ``prefix``, skipping unreadable ones."""
        try:
            rows = await self._kv.items(prefix)
        except STORAGE_ERRORS as e:
            logger.warning("Could not read %s records: %s", prefix.rstrip(":"), e)
            return []

        parsed = []
        for key, text in rows:
            try:
                parsed.append(parse(codec.loads(text)))
            except (ValidationError, *STORAGE_ERRORS) as e:
                logger.warning("Skipping stored record %s: %s", key, e)
        return parsed

    async def _sync(self, prefix: str, records: dict[str, dict]) -> None:
        existing = {key for key, _ in await self._kv.items(prefix)}
        for record_id, data in records.items():
            await self._kv.put(prefix + record_id, codec.dumps(data))
        for key in existing - {prefix + r for r in records}:
            await self._kv.delete(key)
