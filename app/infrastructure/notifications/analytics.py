"""Delivery analytics aggregation.

Maintains running counters per (tenant, channel, UTC date) and per
(tenant, campaign): sent, delivered, failed, opened, clicked, bounced.
Rates are computed on read, never stored.

Aggregation is idempotent: a DeliveryAttempt is counted once per attempt
id, and a status or engagement event once per (notification, metric), so
replays and duplicate provider callbacks never double count.
"""

import threading
from collections import Counter
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, computed_field

from infrastructure.logging import get_module_logger
from infrastructure.notifications.models import (
    Channel,
    DeliveryAttempt,
    Notification,
    NotificationStatus,
)

logger = get_module_logger()

METRICS = ("sent", "delivered", "failed", "opened", "clicked", "bounced")

_STATUS_METRICS = {
    NotificationStatus.DELIVERED: "delivered",
    NotificationStatus.FAILED: "failed",
    NotificationStatus.BOUNCED: "bounced",
}


def _counts(counter: Counter) -> Dict[str, int]:
    return {m: counter.get(m, 0) for m in METRICS}


def _rate(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return round(numerator / denominator, 4)


class DeliveryStats(BaseModel):
    """Counters with derived rates."""

    sent: int = 0
    delivered: int = 0
    failed: int = 0
    opened: int = 0
    clicked: int = 0
    bounced: int = 0

    @computed_field
    @property
    def delivery_rate(self) -> float:
        return _rate(self.delivered, self.sent)

    @computed_field
    @property
    def open_rate(self) -> float:
        return _rate(self.opened, self.delivered)

    @computed_field
    @property
    def click_rate(self) -> float:
        return _rate(self.clicked, self.delivered)

    @computed_field
    @property
    def bounce_rate(self) -> float:
        return _rate(self.bounced, self.sent)

    @classmethod
    def from_counter(cls, counter: Counter) -> "DeliveryStats":
        return cls(**_counts(counter))


class DailyChannelStats(DeliveryStats):
    tenant_id: str
    channel: Channel
    day: date


class CampaignStats(DeliveryStats):
    tenant_id: str
    campaign_id: str


class AnalyticsAggregator:
    """Thread-safe in-memory analytics counters.

    Example:
        analytics = AnalyticsAggregator()
        analytics.record_attempt(attempt)
        analytics.record_transition(notification, previous_status)
        analytics.daily_stats("tenant-1", start=date(2026, 10, 1))
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._daily: Dict[Tuple[str, Channel, date], Counter] = {}
        self._campaigns: Dict[Tuple[str, str], Counter] = {}
        self._seen: Set[str] = set()

    def record_attempt(self, attempt: DeliveryAttempt) -> bool:
        """Count a successful attempt as ``sent``. Returns False for replays."""
        if not attempt.outcome.is_success:
            return False
        return self._increment(
            key=f"attempt:{attempt.id}",
            metric="sent",
            tenant_id=attempt.tenant_id,
            channel=attempt.channel,
            campaign_id=attempt.campaign_id,
            at=attempt.attempted_at,
        )

    def record_transition(
        self,
        notification: Notification,
        previous: Optional[NotificationStatus] = None,
        at: Optional[datetime] = None,
    ) -> bool:
        """Count a delivered, failed or bounced terminal transition."""
        metric = _STATUS_METRICS.get(notification.status)
        if metric is None:
            return False
        return self.record_event(notification, metric, at)

    def record_event(
        self, notification: Notification, metric: str, at: Optional[datetime] = None
    ) -> bool:
        """Count one engagement or status metric for a notification."""
        if metric not in METRICS:
            raise ValueError(f"Unknown metric: {metric}")
        return self._increment(
            key=f"{notification.id}:{metric}",
            metric=metric,
            tenant_id=notification.tenant_id,
            channel=notification.channel,
            campaign_id=notification.campaign_id,
            at=at or datetime.now(timezone.utc),
        )

    def daily_stats(
        self,
        tenant_id: str,
        channel: Optional[Channel] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[DailyChannelStats]:
        """Per channel per day counters for a tenant, ``start``/``end`` inclusive."""
        with self._lock:
            rows = [
                DailyChannelStats(tenant_id=t, channel=c, day=d, **_counts(counter))
                for (t, c, d), counter in self._daily.items()
                if t == tenant_id
                and (channel is None or c is channel)
                and (start is None or d >= start)
                and (end is None or d <= end)
            ]
        return sorted(rows, key=lambda r: (r.day, r.channel.value))

    def totals(
        self,
        tenant_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> DeliveryStats:
        total: Counter = Counter()
        for row in self.daily_stats(tenant_id, start=start, end=end):
            total.update({m: getattr(row, m) for m in METRICS})
        return DeliveryStats.from_counter(total)

    def campaign_stats(self, tenant_id: str, campaign_id: str) -> CampaignStats:
        with self._lock:
            counter = Counter(self._campaigns.get((tenant_id, campaign_id), Counter()))
        return CampaignStats(
            tenant_id=tenant_id,
            campaign_id=campaign_id,
            **_counts(counter),
        )

    def _increment(
        self,
        key: str,
        metric: str,
        tenant_id: str,
        channel: Channel,
        campaign_id: Optional[str],
        at: datetime,
    ) -> bool:
        day = at.astimezone(timezone.utc).date()
        with self._lock:
            if key in self._seen:
                logger.debug("analytics_duplicate_ignored", key=key)
                return False
            self._seen.add(key)
            self._daily.setdefault((tenant_id, channel, day), Counter())[metric] += 1
            if campaign_id:
                self._campaigns.setdefault((tenant_id, campaign_id), Counter())[metric] += 1
        return True
