"""Notification dispatcher with provider routing and fallback.

Takes a queued notification through one dispatch attempt:

1. Cancel it with reason ``expired`` if its ``expires_at`` has passed.
2. Claim it with a compare-and-swap ``queued -> sending``. Losing the
   race means another worker owns it; nothing is sent.
3. Route to the tenant's primary provider for the channel.
4. On a connectivity-class failure (timeout, 5xx, open circuit), try the
   fallback provider once.
5. Record every provider call as a DeliveryAttempt.
6. Success moves to ``sent`` (or ``delivered`` for synchronous channels);
   failure is handed to the RetryManager. So is any error raised after the
   claim, so a claimed notification never stays ``sending``.

Each adapter call runs with a bounded timeout; a timeout is transient.

Usage Example:
    dispatcher = NotificationDispatcher(
        store=store,
        attempts=attempt_log,
        registry=registry,
        retry_manager=retry_manager,
    )
    notification = dispatcher.dispatch(notification_id)
"""

import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Callable, List, Optional, Sequence

import structlog

from infrastructure.notifications.channels.base import (
    ChannelAdapter,
    SendOutcome,
    SendResult,
)
from infrastructure.notifications.channels.registry import ChannelRegistry
from infrastructure.notifications.errors import NotFoundError, ValidationError
from infrastructure.notifications.models import (
    AttemptOutcome,
    DeliveryAttempt,
    Notification,
    NotificationStatus,
    utc_now,
)
from infrastructure.notifications.preferences import TenantSettingsStore
from infrastructure.notifications.retry import RetryManager
from infrastructure.notifications.state import TransitionListener
from infrastructure.notifications.store import DeliveryAttemptLog, NotificationStore

logger = structlog.get_logger()

AttemptListener = Callable[[DeliveryAttempt], None]

# Provider recorded when a claimed notification never reached an adapter
UNROUTED = "unrouted"


def _attempt_outcome(result: SendResult) -> AttemptOutcome:
    if result.outcome in (SendOutcome.ACCEPTED, SendOutcome.DELIVERED):
        return AttemptOutcome.SENT
    if result.retryable:
        return AttemptOutcome.TRANSIENT_FAILURE
    return AttemptOutcome.PERMANENT_FAILURE


class NotificationDispatcher:
    """Single-flight dispatch of queued notifications.

    Attributes:
        store: Notification store (durable queue)
        attempts: Append-only delivery attempt log
        registry: Channel adapter registry
        retry_manager: Handles failed attempts
        tenant_store: Optional tenant settings for provider overrides
        listeners: Called after every status transition
        attempt_listeners: Called after every recorded attempt
        timeout_seconds: Bound on each adapter call
    """

    def __init__(
        self,
        store: NotificationStore,
        attempts: DeliveryAttemptLog,
        registry: ChannelRegistry,
        retry_manager: RetryManager,
        tenant_store: Optional[TenantSettingsStore] = None,
        listeners: Sequence[TransitionListener] = (),
        attempt_listeners: Sequence[AttemptListener] = (),
        timeout_seconds: float = 10.0,
        max_concurrent_calls: int = 16,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.attempts = attempts
        self.registry = registry
        self.retry_manager = retry_manager
        self.tenant_store = tenant_store
        self.listeners: List[TransitionListener] = list(listeners)
        self.attempt_listeners: List[AttemptListener] = list(attempt_listeners)
        self.timeout_seconds = timeout_seconds
        self.clock = clock
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent_calls, thread_name_prefix="adapter-call"
        )

    def dispatch(self, notification_id: str) -> Optional[Notification]:
        """Run one dispatch attempt for a queued notification.

        Args:
            notification_id: Notification to dispatch

        Returns:
            The notification after the attempt, or None when it was not
            queued (already claimed, cancelled or finished)

        Raises:
            NotFoundError: Unknown notification id
        """
        current = self.store.get(notification_id)
        if current is None:
            raise NotFoundError(f"Notification {notification_id} not found")

        now = self.clock()
        if (
            current.status is NotificationStatus.QUEUED
            and current.expires_at is not None
            and current.expires_at <= now
        ):
            return self._expire(current, now)

        claimed = self.store.transition(
            notification_id,
            expected={NotificationStatus.QUEUED},
            target=NotificationStatus.SENDING,
            reason="claimed",
            at=now,
            increment_attempts=True,
        )
        if claimed is None:
            logger.info(
                "dispatch_skipped",
                notification_id=notification_id,
                status=current.status.value,
            )
            return None
        self._notify(claimed, NotificationStatus.QUEUED)

        try:
            return self._deliver(claimed)
        except ValidationError as e:
            logger.error(
                "dispatch_unroutable",
                notification_id=claimed.id,
                channel=claimed.channel.value,
                error=str(e),
            )
            result = SendResult.failure(
                UNROUTED, error_code="NO_PROVIDER", error_message=str(e), retryable=False
            )
        except Exception as e:
            logger.error(
                "dispatch_failed",
                notification_id=claimed.id,
                channel=claimed.channel.value,
                error=str(e),
                exc_info=True,
            )
            result = SendResult.failure(
                UNROUTED, error_code="DISPATCH_ERROR", error_message=str(e), retryable=True
            )
        return self.retry_manager.handle_failure(claimed, result)

    def _deliver(self, claimed: Notification) -> Optional[Notification]:
        preferred = None
        if self.tenant_store is not None:
            overrides = self.tenant_store.get(claimed.tenant_id).provider_overrides
            preferred = overrides.get(claimed.channel)
        route = self.registry.route(claimed.channel, preferred_provider=preferred)

        result = self._attempt(route.primary, claimed)
        if not result.is_success and result.retryable and route.fallback is not None:
            logger.warning(
                "provider_fallback",
                notification_id=claimed.id,
                channel=claimed.channel.value,
                primary=route.primary.provider_name,
                fallback=route.fallback.provider_name,
                error_code=result.error_code,
            )
            result = self._attempt(route.fallback, claimed)

        if result.is_success:
            return self._complete(claimed, result)
        return self.retry_manager.handle_failure(claimed, result)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _attempt(self, adapter: ChannelAdapter, notification: Notification) -> SendResult:
        started = time.monotonic()
        attempted_at = self.clock()
        future = self._executor.submit(adapter.send, notification, notification.payload)
        try:
            result = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            result = SendResult.failure(
                adapter.provider_name,
                error_code="TIMEOUT",
                error_message=(
                    f"{adapter.provider_name} did not respond within "
                    f"{self.timeout_seconds}s"
                ),
                retryable=True,
            )
        except Exception as e:
            logger.error(
                "channel_adapter_error",
                notification_id=notification.id,
                provider=adapter.provider_name,
                error=str(e),
                exc_info=True,
            )
            result = SendResult.failure(
                adapter.provider_name,
                error_code="ADAPTER_ERROR",
                error_message=str(e),
                retryable=True,
            )

        latency_ms = round((time.monotonic() - started) * 1000, 2)
        attempt = DeliveryAttempt(
            notification_id=notification.id,
            tenant_id=notification.tenant_id,
            channel=notification.channel,
            attempt_number=notification.attempt_count,
            provider=adapter.provider_name,
            outcome=_attempt_outcome(result),
            attempted_at=attempted_at,
            latency_ms=latency_ms,
            provider_message_id=result.provider_message_id,
            error_code=result.error_code,
            error_message=result.error_message,
            campaign_id=notification.campaign_id,
        )
        self.attempts.append(attempt)
        for listener in self.attempt_listeners:
            listener(attempt)

        logger.info(
            "delivery_attempted",
            notification_id=notification.id,
            channel=notification.channel.value,
            provider=adapter.provider_name,
            attempt=attempt.attempt_number,
            outcome=attempt.outcome.value,
            latency_ms=latency_ms,
            error_code=result.error_code,
        )
        return result

    def _complete(self, notification: Notification, result: SendResult) -> Notification:
        now = self.clock()
        delivered = result.outcome is SendOutcome.DELIVERED
        target = NotificationStatus.DELIVERED if delivered else NotificationStatus.SENT
        changes = {
            "provider": result.provider,
            "provider_message_id": result.provider_message_id,
            "sent_at": now,
            "failure_reason": None,
        }
        if delivered:
            changes["delivered_at"] = now

        updated = self.store.transition(
            notification.id,
            expected={NotificationStatus.SENDING},
            target=target,
            reason="provider_accepted" if not delivered else "delivered",
            at=now,
            **changes,
        )
        if updated is None:
            # A provider callback already moved it on; keep its status.
            return self.store.update(notification.id, **changes)
        self._notify(updated, NotificationStatus.SENDING)
        return updated

    def _expire(self, notification: Notification, now: datetime) -> Optional[Notification]:
        cancelled = self.store.transition(
            notification.id,
            expected={NotificationStatus.QUEUED},
            target=NotificationStatus.CANCELLED,
            reason="expired",
            at=now,
            failure_reason="expired",
            cancelled_at=now,
        )
        if cancelled is not None:
            logger.info("notification_expired", notification_id=notification.id)
            self._notify(cancelled, NotificationStatus.QUEUED)
        return cancelled

    def _notify(self, notification: Notification, previous: NotificationStatus) -> None:
        for listener in self.listeners:
            listener(notification, previous)
