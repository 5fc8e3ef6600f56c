"""Thread-safe in-memory LRU cache with a byte-size ceiling and per-entry TTL.

Design decisions
────────────────
• **OrderedDict** for O(1) LRU eviction and promotion.
• **Size tracking** via ``json.dumps`` byte length of the cached value.
• **Expiry** is checked lazily on ``get``; an expired entry is dropped and
  reported as a miss.  ``ttl_seconds=None`` keeps entries until evicted.
• **threading.Lock** because the chat route runs the agent in worker
  threads.

Usage in SupabaseClient
───────────────────────
>>> cache = LRUCache(max_bytes=1024 * 1024, ttl_seconds=300)
>>> cache.put("services", [{"id": "1", "name": "Hydrotherapy"}])
>>> cache.get("services")
[{'id': '1', 'name': 'Hydrotherapy'}]
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 5 * 1024 * 1024


class LRUCache:
    """Least-Recently-Used cache bounded by total estimated byte size."""

    def __init__(
        self,
        max_bytes: int = DEFAULT_MAX_BYTES,
        ttl_seconds: float | None = None,
    ) -> None:
        self._max_bytes = max_bytes
        self._ttl = ttl_seconds
        self._current_bytes = 0
        # key → (value, size_bytes, expires_at or None)
        self._store: OrderedDict[str, tuple[Any, int, float | None]] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def _estimate_bytes(value: Any) -> int:
        try:
            return len(json.dumps(value, default=str).encode("utf-8"))
        except (TypeError, ValueError, OverflowError):
            return len(str(value).encode("utf-8"))

    def _drop(self, key: str) -> None:
        _, size, _ = self._store.pop(key)
        self._current_bytes -= size

    # ── Core operations ──────────────────────────────────────────────

    def get(self, key: str) -> Any | None:
        """Return the cached value (promoting it to MRU) or ``None``."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, _, expires_at = entry
            if expires_at is not None and time.monotonic() >= expires_at:
                self._drop(key)
                logger.debug("Cache: %s expired", key)
                return None
            self._store.move_to_end(key)
            return value

    def put(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        """Insert or overwrite *key*, evicting LRU entries if needed.

        *ttl_seconds* overrides the cache-wide TTL for this entry.
        """
        size = self._estimate_bytes(value)
        if size > self._max_bytes:
            logger.debug("Cache: skipping key %s (size %d > max %d)", key, size, self._max_bytes)
            return

        ttl = ttl_seconds if ttl_seconds is not None else self._ttl
        expires_at = time.monotonic() + ttl if ttl is not None else None

        with self._lock:
            if key in self._store:
                self._drop(key)

            while self._current_bytes + size > self._max_bytes and self._store:
                evicted_key, (_, evicted_size, _) = self._store.popitem(last=False)
                self._current_bytes -= evicted_size
                logger.debug("Cache: evicted %s (%d bytes)", evicted_key, evicted_size)

            self._store[key] = (value, size, expires_at)
            self._current_bytes += size

    def invalidate(self, key: str) -> bool:
        """Remove a single key.  Returns ``True`` if the key existed."""
        with self._lock:
            if key in self._store:
                self._drop(key)
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._current_bytes = 0

    # ── Introspection ────────────────────────────────────────────────

    @property
    def current_bytes(self) -> int:
        return self._current_bytes

    @property
    def entry_count(self) -> int:
        return len(self._store)
