"""Directory size cache for diskdive."""

import os
import threading
from datetime import datetime
from typing import Optional

from diskdive.models import CacheEntry


def cache_key(path: str) -> str:
    """Normalize a path for use as a cache key."""
    return os.path.normpath(os.path.abspath(path))


def _ancestors(key: str) -> list[str]:
    parents = []
    current = key
    while True:
        parent = os.path.dirname(current)
        if parent == current:
            return parents
        parents.append(parent)
        current = parent


class SizeCache:
    """
    Memoized aggregate directory sizes keyed by absolute path.

    Entries never expire on their own; they are dropped only when a path is
    refreshed or deleted. Writes are serialized; reads are single dict
    lookups and may run from any number of scan workers.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, path: str) -> tuple[int, bool]:
        """
        Look up a cached size.

        Returns:
            Tuple of (size_bytes, found); size_bytes is 0 on a miss
        """
        entry = self._entries.get(cache_key(path))
        if entry is None:
            return 0, False
        return entry.size_bytes, True

    def entry(self, path: str) -> Optional[CacheEntry]:
        """Full cache record for a path, if any."""
        return self._entries.get(cache_key(path))

    def put(self, path: str, size_bytes: int) -> None:
        """Store a size; writing the same size again only refreshes the timestamp."""
        key = cache_key(path)
        with self._lock:
            self._entries[key] = CacheEntry(path=key, size_bytes=size_bytes, computed_at=datetime.now())

    def invalidate(self, path: str) -> None:
        """Drop a path and every cached ancestor, whose aggregates are now stale."""
        key = cache_key(path)
        with self._lock:
            self._entries.pop(key, None)
            for parent in _ancestors(key):
                self._entries.pop(parent, None)

    def invalidate_subtree(self, path: str) -> None:
        """Drop a path and everything cached beneath it."""
        key = cache_key(path)
        prefix = key.rstrip(os.sep) + os.sep
        with self._lock:
            stale = [k for k in self._entries if k == key or k.startswith(prefix)]
            for k in stale:
                del self._entries[k]

    def clear(self) -> None:
        """Drop everything."""
        with self._lock:
            self._entries.clear()

    def __contains__(self, path: str) -> bool:
        return cache_key(path) in self._entries

    def __len__(self) -> int:
        return len(self._entries)
