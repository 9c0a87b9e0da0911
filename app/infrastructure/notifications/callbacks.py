"""Provider callback processing.

Providers report delivery, bounce, open and click events asynchronously.
A callback body is trusted only after its HMAC-SHA256 signature (header
``X-Signature``) verifies against the provider's shared secret. The
adapter for (channel, provider) then parses each event into a
CallbackUpdate which is applied here:

- delivered / bounced / failed: status transition from ``sent`` (or a
  still-``sending`` notification whose acceptance raced the callback)
- opened / clicked: set ``read_at`` / ``clicked_at`` and feed analytics,
  delivery status unchanged

Duplicate and out-of-order callbacks are harmless: the transition is a
compare-and-swap and analytics counts each (notification, metric) once.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

import structlog

from infrastructure.notifications.channels.base import CallbackEvent, CallbackUpdate
from infrastructure.notifications.channels.registry import ChannelRegistry
from infrastructure.notifications.errors import NotFoundError, ValidationError
from infrastructure.notifications.models import (
    Channel,
    Notification,
    NotificationStatus,
    utc_now,
)
from infrastructure.notifications.signing import verify
from infrastructure.notifications.state import TransitionListener
from infrastructure.notifications.store import NotificationStore

logger = structlog.get_logger()

SIGNATURE_HEADER = "X-Signature"

EngagementListener = Callable[[Notification, str, datetime], None]

_CALLBACK_SOURCES = frozenset({NotificationStatus.SENDING, NotificationStatus.SENT})


@dataclass
class CallbackSummary:
    processed: int = 0
    ignored: int = 0
    not_found: int = 0


class CallbackProcessor:
    """Verify, parse and apply provider callbacks.

    Args:
        store: Notification store
        registry: Channel registry used to find the parsing adapter
        secrets: Provider name to shared callback secret
        listeners: Called after every status transition
        engagement_listeners: Called with (notification, metric, at) for
            opens and clicks
    """

    def __init__(
        self,
        store: NotificationStore,
        registry: ChannelRegistry,
        secrets: Optional[Dict[str, str]] = None,
        listeners: Sequence[TransitionListener] = (),
        engagement_listeners: Sequence[EngagementListener] = (),
    ):
        self.store = store
        self.registry = registry
        self.secrets = dict(secrets or {})
        self.listeners = list(listeners)
        self.engagement_listeners = list(engagement_listeners)

    def handle(
        self,
        channel: Channel,
        provider: str,
        body: bytes,
        signature: Optional[str],
    ) -> CallbackSummary:
        """Verify and apply a raw callback body.

        Raises:
            SignatureVerificationError: Signature missing or wrong
            NotFoundError: No adapter for (channel, provider)
            ValidationError: Body is not JSON
        """
        verify(self.secrets.get(provider), body, signature)

        adapter = self.registry.get(channel, provider)
        if adapter is None:
            raise NotFoundError(f"Unknown provider {provider} for {channel.value}")

        try:
            decoded = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValidationError(f"Callback body is not valid JSON: {e}") from e

        events: List = decoded if isinstance(decoded, list) else [decoded]
        summary = CallbackSummary()
        for item in events:
            update = adapter.parse_callback(item) if isinstance(item, dict) else None
            if update is None:
                summary.ignored += 1
                continue
            if self.apply(update) is None:
                summary.not_found += 1
            else:
                summary.processed += 1

        logger.info(
            "provider_callback_processed",
            channel=channel.value,
            provider=provider,
            processed=summary.processed,
            ignored=summary.ignored,
            not_found=summary.not_found,
        )
        return summary

    def apply(self, update: CallbackUpdate) -> Optional[Notification]:
        """Apply one parsed callback event.

        Returns:
            The notification after the update, or None if it is unknown
        """
        notification = self._find(update)
        if notification is None:
            logger.warning(
                "callback_notification_not_found",
                provider_message_id=update.provider_message_id,
                notification_id=update.notification_id,
            )
            return None

        at = update.occurred_at or utc_now()

        if update.event is CallbackEvent.OPENED:
            if notification.read_at is None:
                notification = self.store.update(notification.id, read_at=at)
            self._engagement(notification, "opened", at)
            return notification

        if update.event is CallbackEvent.CLICKED:
            if notification.clicked_at is None:
                notification = self.store.update(notification.id, clicked_at=at)
            self._engagement(notification, "clicked", at)
            return notification

        target = update.event.status
        changes = {}
        if target is NotificationStatus.DELIVERED:
            changes["delivered_at"] = at
        else:
            changes["failure_reason"] = update.reason or update.event.value

        updated = self.store.transition(
            notification.id,
            expected=_CALLBACK_SOURCES,
            target=target,
            reason=f"callback:{update.event.value}",
            at=at,
            **changes,
        )
        if updated is None:
            logger.info(
                "callback_transition_ignored",
                notification_id=notification.id,
                status=notification.status.value,
                callback_event=update.event.value,
            )
            return notification

        for listener in self.listeners:
            listener(updated, notification.status)
        return updated

    def _find(self, update: CallbackUpdate) -> Optional[Notification]:
        if update.provider_message_id:
            found = self.store.find_by_provider_message_id(update.provider_message_id)
            if found is not None:
                return found
        if update.notification_id:
            return self.store.get(update.notification_id)
        return None

    def _engagement(self, notification: Notification, metric: str, at: datetime) -> None:
        for listener in self.engagement_listeners:
            listener(notification, metric, at)
