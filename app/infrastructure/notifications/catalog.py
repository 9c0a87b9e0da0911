"""Notification type catalogue.

Maps event type codes to their category, default priority, default
channels and deferral expiry policy. Category drives the opt-out bypass in
the eligibility resolver; the expiry policy decides what happens when
quiet hours push a send too far out.
"""

import threading
from typing import Dict, Iterable, List, Optional

from infrastructure.notifications.errors import ValidationError
from infrastructure.notifications.models import (
    Channel,
    ExpiryAction,
    ExpiryPolicy,
    NotificationCategory,
    NotificationPriority,
    NotificationTypeDefinition,
)

MARKETING_EXPIRY = ExpiryPolicy(
    max_defer_seconds=12 * 60 * 60, on_expiry=ExpiryAction.DROP
)
NEVER_EXPIRES = ExpiryPolicy()


def _transactional(code: str, name: str, **kwargs) -> NotificationTypeDefinition:
    return NotificationTypeDefinition(
        code=code,
        name=name,
        category=NotificationCategory.TRANSACTIONAL,
        can_opt_out=False,
        expiry=NEVER_EXPIRES,
        **kwargs,
    )


def _marketing(code: str, name: str, **kwargs) -> NotificationTypeDefinition:
    return NotificationTypeDefinition(
        code=code,
        name=name,
        category=NotificationCategory.MARKETING,
        can_opt_out=True,
        default_priority=NotificationPriority.LOW,
        expiry=MARKETING_EXPIRY,
        **kwargs,
    )


DEFAULT_TYPES: List[NotificationTypeDefinition] = [
    _transactional("order_confirmed", "Order confirmed"),
    _transactional("order_shipped", "Order shipped"),
    _transactional("order_delivered", "Order delivered"),
    _transactional("order_cancelled", "Order cancelled"),
    _transactional("refund_processed", "Refund processed"),
    _transactional(
        "payment_failed",
        "Payment failed",
        default_priority=NotificationPriority.HIGH,
    ),
    _transactional("payment_received", "Payment received"),
    NotificationTypeDefinition(
        code="password_reset",
        name="Password reset",
        category=NotificationCategory.SECURITY,
        can_opt_out=False,
        default_priority=NotificationPriority.URGENT,
        default_channels=[Channel.EMAIL],
    ),
    NotificationTypeDefinition(
        code="login_alert",
        name="New sign-in",
        category=NotificationCategory.SECURITY,
        can_opt_out=False,
        default_priority=NotificationPriority.HIGH,
    ),
    NotificationTypeDefinition(
        code="system_maintenance",
        name="Scheduled maintenance",
        category=NotificationCategory.SYSTEM,
        can_opt_out=False,
        default_channels=[Channel.IN_APP],
    ),
    NotificationTypeDefinition(
        code="low_stock",
        name="Low stock alert",
        category=NotificationCategory.SYSTEM,
        can_opt_out=False,
        default_priority=NotificationPriority.HIGH,
        default_channels=[Channel.IN_APP, Channel.WEBHOOK],
    ),
    _marketing("promotional_campaign", "Promotion"),
    _marketing("abandoned_cart", "Abandoned cart reminder"),
    _marketing("back_in_stock", "Back in stock"),
    _marketing("newsletter", "Newsletter", default_channels=[Channel.EMAIL]),
]


class NotificationTypeCatalog:
    """Thread-safe lookup of notification type definitions.

    Example:
        catalog = NotificationTypeCatalog()
        definition = catalog.require("order_confirmed")
        definition.category.bypasses_opt_out  # True
    """

    def __init__(self, types: Optional[Iterable[NotificationTypeDefinition]] = None):
        self._lock = threading.Lock()
        self._types: Dict[str, NotificationTypeDefinition] = {}
        for definition in DEFAULT_TYPES if types is None else types:
            self._types[definition.code] = definition

    def register(self, definition: NotificationTypeDefinition) -> None:
        with self._lock:
            self._types[definition.code] = definition

    def get(self, code: str) -> Optional[NotificationTypeDefinition]:
        with self._lock:
            return self._types.get(code)

    def require(self, code: str) -> NotificationTypeDefinition:
        """Return the definition for ``code`` or raise ValidationError."""
        definition = self.get(code)
        if definition is None:
            raise ValidationError(f"Unknown notification type: {code}")
        return definition

    def list(self) -> List[NotificationTypeDefinition]:
        with self._lock:
            return sorted(self._types.values(), key=lambda d: d.code)
