"""Notification and delivery attempt export for reporting.

Dumps a tenant's notifications created in a date range, plus the delivery
attempts made in the same range, as CSV or JSON. CSV output holds both
kinds of rows in one table distinguished by ``record_type``; cells that
look like spreadsheet formulas are prefixed with a quote.
"""

import csv
import io
import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List

from infrastructure.logging import get_module_logger
from infrastructure.notifications.models import DeliveryAttempt, Notification
from infrastructure.notifications.store import DeliveryAttemptLog, NotificationStore

logger = get_module_logger()


class ExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


NOTIFICATION_COLUMNS = [
    "id",
    "tenant_id",
    "user_id",
    "event_type",
    "category",
    "channel",
    "priority",
    "status",
    "provider",
    "provider_message_id",
    "failure_reason",
    "attempt_count",
    "campaign_id",
    "template_id",
    "scheduled_for",
    "created_at",
    "sent_at",
    "delivered_at",
    "read_at",
    "clicked_at",
    "cancelled_at",
]

ATTEMPT_COLUMNS = [
    "id",
    "notification_id",
    "tenant_id",
    "channel",
    "attempt_number",
    "provider",
    "outcome",
    "attempted_at",
    "latency_ms",
    "provider_message_id",
    "error_code",
    "error_message",
    "campaign_id",
]

CSV_COLUMNS = ["record_type"] + list(
    dict.fromkeys(NOTIFICATION_COLUMNS + ATTEMPT_COLUMNS)
)

_FORMULA_PREFIXES = ("=", "+", "-", "@")


def _cell(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def notification_row(notification: Notification) -> Dict[str, Any]:
    row = {
        "id": notification.id,
        "tenant_id": notification.tenant_id,
        "user_id": notification.recipient.user_id,
        "event_type": notification.event_type,
        "category": notification.category,
        "channel": notification.channel,
        "priority": notification.priority,
        "status": notification.status,
        "provider": notification.provider,
        "provider_message_id": notification.provider_message_id,
        "failure_reason": notification.failure_reason,
        "attempt_count": notification.attempt_count,
        "campaign_id": notification.campaign_id,
        "template_id": notification.template_id,
        "scheduled_for": notification.scheduled_for,
        "created_at": notification.created_at,
        "sent_at": notification.sent_at,
        "delivered_at": notification.delivered_at,
        "read_at": notification.read_at,
        "clicked_at": notification.clicked_at,
        "cancelled_at": notification.cancelled_at,
    }
    return {k: _cell(v) for k, v in row.items()}


def attempt_row(attempt: DeliveryAttempt) -> Dict[str, Any]:
    return {k: _cell(getattr(attempt, k)) for k in ATTEMPT_COLUMNS}


def _sanitize(value: Any) -> Any:
    if isinstance(value, str) and value.startswith(_FORMULA_PREFIXES):
        return "'" + value
    return value


class NotificationExporter:
    """Build CSV/JSON exports from the notification store and attempt log."""

    def __init__(self, store: NotificationStore, attempts: DeliveryAttemptLog):
        self.store = store
        self.attempts = attempts

    def rows(
        self, tenant_id: str, start: datetime, end: datetime
    ) -> Dict[str, List[Dict[str, Any]]]:
        """Export rows for ``[start, end)``."""
        if end <= start:
            raise ValueError("end must be after start")
        notifications = [
            notification_row(n) for n in self.store.list_between(tenant_id, start, end)
        ]
        attempts = [
            attempt_row(a) for a in self.attempts.list_between(tenant_id, start, end)
        ]
        return {"notifications": notifications, "attempts": attempts}

    def export(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        fmt: ExportFormat = ExportFormat.CSV,
    ) -> str:
        """Render the export as a CSV or JSON document."""
        data = self.rows(tenant_id, start, end)
        logger.info(
            "notifications_exported",
            tenant_id=tenant_id,
            format=fmt.value,
            notifications=len(data["notifications"]),
            attempts=len(data["attempts"]),
        )
        if fmt is ExportFormat.JSON:
            return json.dumps(
                {
                    "tenant_id": tenant_id,
                    "start": start.isoformat(),
                    "end": end.isoformat(),
                    **data,
                }
            )

        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        for record_type, rows in (
            ("notification", data["notifications"]),
            ("attempt", data["attempts"]),
        ):
            for row in rows:
                writer.writerow(
                    {"record_type": record_type, **{k: _sanitize(v) for k, v in row.items()}}
                )
        return output.getvalue()
