"""Typed observer registration — one Signal per event category."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Signal(Generic[T]):
    """Multi-subscriber fan-out for a single event category.

    Subscribers are called synchronously, in registration order, on the
    emitting thread. A subscriber that raises is logged and skipped; it
    never interrupts the emitter or the remaining subscribers.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: list[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def connect(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register a subscriber. Returns a function that disconnects it."""
        with self._lock:
            self._subscribers.append(callback)

        def _disconnect() -> None:
            self.disconnect(callback)

        return _disconnect

    def disconnect(self, callback: Callable[[T], None]) -> bool:
        with self._lock:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                return False
            return True

    def emit(self, payload: T) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(payload)
            except Exception:
                logger.exception("Subscriber for '%s' failed", self.name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)
