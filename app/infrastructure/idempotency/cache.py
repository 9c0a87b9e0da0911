"""Idempotency cache interface."""

from abc import ABC, abstractmethod
from typing import Any, ContextManager, Dict, Optional


class IdempotencyCache(ABC):
    """Send API responses keyed by idempotency key.

    A client retrying a send with the same key inside the TTL gets the
    stored response back instead of a second set of notifications. Stored
    and returned values are plain dicts (``SendResponse.model_dump``).

    Callers hold ``lock(key)`` around the get, send and set sequence so two
    concurrent requests with one key produce a single send.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Stored response, or None when absent or expired."""

    @abstractmethod
    def set(self, key: str, response: Dict[str, Any], ttl_seconds: int) -> None:
        """Store ``response`` under ``key`` for ``ttl_seconds``."""

    @abstractmethod
    def lock(self, key: str) -> ContextManager[None]:
        """Exclusive hold on ``key`` for the duration of the block."""

    @abstractmethod
    def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""

    @abstractmethod
    def clear(self) -> None:
        """Drop every entry."""

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Backend name, entry count and hit/miss counters."""
