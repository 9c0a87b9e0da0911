"""In-memory idempotency cache implementation."""

import copy
import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from infrastructure.idempotency.cache import IdempotencyCache
from infrastructure.logging import get_module_logger

logger = get_module_logger()


class InMemoryIdempotencyCache(IdempotencyCache):
    """Thread-safe in-process idempotency cache with per-entry TTL.

    Suitable for single-instance deployments and tests. Expired entries are
    dropped lazily on read.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        self._lock = threading.Lock()
        # key -> [lock, holders and waiters]
        self._key_locks: Dict[str, List[Any]] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            expires_at, response = entry
            if expires_at <= time.monotonic():
                del self._entries[key]
                self._misses += 1
                logger.debug("idempotency_entry_expired", idempotency_key=key)
                return None
            self._hits += 1
            return copy.deepcopy(response)

    def set(self, key: str, response: Dict[str, Any], ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (
                time.monotonic() + ttl_seconds,
                copy.deepcopy(response),
            )

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        with self._lock:
            entry = self._key_locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._key_locks[key]

    def purge_expired(self) -> int:
        now = time.monotonic()
        with self._lock:
            expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("idempotency_entries_purged", count=len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "backend": "memory",
                "entries": len(self._entries),
                "locked_keys": len(self._key_locks),
                "hits": self._hits,
                "misses": self._misses,
            }
