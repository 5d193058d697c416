"""Process-scoped key/value caches injected into the relay components."""

from __future__ import annotations

from typing import Protocol


class KeyValueCache(Protocol):
    """Minimal get/put cache surface.

    Entries are an optimization only; a miss must always be recoverable.
    """

    def get(self, key: str) -> str | None:
        """Return the cached value for ``key`` if present."""

    def put(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""

    def delete(self, key: str) -> None:
        """Drop ``key``; a missing key is not an error."""


class InMemoryCache:
    """Dict-backed cache local to one process."""

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._entries.get(key)

    def put(self, key: str, value: str) -> None:
        self._entries[key] = value

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)
