"""Simple cache abstractions."""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Protocol


class Cache(Protocol):
    """Cache interface for simple key-value data."""

    def get(self, key: str) -> object | None:
        """Return a cached value if present."""

    def set(self, key: str, value: object) -> None:
        """Store a value."""

    def invalidate(self, key: str) -> None:
        """Drop a cached value."""


@dataclass
class BoundedCache(Cache):
    """In-memory LRU cache holding at most `max_entries` values."""

    max_entries: int
    _entries: OrderedDict[str, object]

    def __init__(self, max_entries: int = 256) -> None:
        self.max_entries = max(max_entries, 1)
        self._entries = OrderedDict()

    def get(self, key: str) -> object | None:
        """Return a cached value and mark it recently used."""
        if key not in self._entries:
            return None
        self._entries.move_to_end(key)
        return self._entries[key]

    def set(self, key: str, value: object) -> None:
        """Store a value, evicting the least recently used entry when full."""
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def invalidate(self, key: str) -> None:
        """Drop a cached value if present."""
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
