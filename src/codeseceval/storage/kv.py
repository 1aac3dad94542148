"""Key-value persistence abstraction.

Records are JSON text addressed by stable string keys such as
``rule:SEC001``, ``ruleset:owasp-top10``, ``history:<id>`` and ``settings``.
"""

from __future__ import annotations

from typing import Protocol


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def items(self, prefix: str = "") -> list[tuple[str, str]]:
        """Records whose key starts with ``prefix``, oldest insertion first."""
        ...


class MemoryKeyValueStore:
    """Process-local store for ephemeral runs and tests."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def put(self, key: str, value: str) -> None:
        # Updating keeps the original insertion position
        self._data[key] = value

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def items(self, prefix: str = "") -> list[tuple[str, str]]:
        return [(k, v) for k, v in self._data.items() if k.startswith(prefix)]
