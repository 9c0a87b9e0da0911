"""Tenant send quotas.

Counters are keyed ``(tenant, channel, window)`` where the window is a UTC
calendar day (``day:2026-10-18``) or month (``month:2026-10``). All
mutations are atomic: ``try_consume`` checks every applicable limit and
increments every counter under one lock, so concurrent sends can never
push a counter past its limit.
"""

import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from infrastructure.notifications.errors import QuotaExceeded
from infrastructure.notifications.models import Channel

DAY = "day"
MONTH = "month"


def window_key(window: str, at: datetime) -> str:
    """Counter window for a timestamp, always in UTC."""
    at = at.astimezone(timezone.utc)
    if window == DAY:
        return f"{DAY}:{at.strftime('%Y-%m-%d')}"
    if window == MONTH:
        return f"{MONTH}:{at.strftime('%Y-%m')}"
    raise ValueError(f"Unknown quota window: {window}")


class QuotaStore(ABC):
    """Atomic quota counters."""

    @abstractmethod
    def try_consume(
        self,
        tenant_id: str,
        channel: Channel,
        limits: Dict[str, Optional[int]],
    ) -> None:
        """Consume one unit from every window in ``limits`` or none of them.

        Args:
            tenant_id: Tenant
            channel: Channel
            limits: Window key to limit; None limits are unlimited but still
                counted

        Raises:
            QuotaExceeded: A limited window is already at its limit
        """

    @abstractmethod
    def release(self, tenant_id: str, channel: Channel, windows: List[str]) -> None:
        """Give back one unit on each window (never below zero)."""

    @abstractmethod
    def usage(self, tenant_id: str, channel: Channel, window: str) -> int:
        pass


class InMemoryQuotaStore(QuotaStore):
    """Lock-protected in-memory quota counters."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[Tuple[str, Channel, str], int] = defaultdict(int)

    def try_consume(
        self,
        tenant_id: str,
        channel: Channel,
        limits: Dict[str, Optional[int]],
    ) -> None:
        with self._lock:
            for window, limit in limits.items():
                if limit is not None and self._counters[(tenant_id, channel, window)] >= limit:
                    raise QuotaExceeded(tenant_id, channel.value, window)
            for window in limits:
                self._counters[(tenant_id, channel, window)] += 1

    def release(self, tenant_id: str, channel: Channel, windows: List[str]) -> None:
        with self._lock:
            for window in windows:
                key = (tenant_id, channel, window)
                if self._counters[key] > 0:
                    self._counters[key] -= 1

    def usage(self, tenant_id: str, channel: Channel, window: str) -> int:
        with self._lock:
            return self._counters.get((tenant_id, channel, window), 0)
