"""Retry and backoff management.

Only transient failures are retried. The backoff schedule lists the delay
before each attempt, first attempt included, so its length is the attempt
budget: the default ``[0, 60, 300, 900]`` allows four attempts and a
notification whose fourth attempt fails moves to terminal ``failed``.

An operator may force one more attempt on a failed (or bounced)
notification with a manual retry; that attempt is not retried again
automatically if it fails.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence, Tuple

from infrastructure.logging import get_module_logger
from infrastructure.notifications.channels.base import SendResult
from infrastructure.notifications.errors import NotFoundError, ValidationError
from infrastructure.notifications.models import (
    Notification,
    NotificationStatus,
    utc_now,
)
from infrastructure.notifications.state import TransitionListener
from infrastructure.notifications.store import NotificationStore

logger = get_module_logger()

DEFAULT_BACKOFF_SCHEDULE = (0, 60, 300, 900)


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff schedule; its length is the automatic attempt budget."""

    backoff_schedule: Tuple[int, ...] = DEFAULT_BACKOFF_SCHEDULE
    enabled: bool = True

    def __post_init__(self):
        if not self.backoff_schedule:
            raise ValueError("backoff_schedule must not be empty")

    @classmethod
    def from_settings(cls, retry_settings) -> "RetryPolicy":
        return cls(
            backoff_schedule=tuple(retry_settings.backoff_schedule),
            enabled=retry_settings.enabled,
        )

    @property
    def max_attempts(self) -> int:
        return len(self.backoff_schedule) if self.enabled else 1

    def delay_before(self, attempt_number: int) -> int:
        """Seconds to wait before 1-based ``attempt_number``."""
        index = min(max(attempt_number - 1, 0), len(self.backoff_schedule) - 1)
        return self.backoff_schedule[index]

    def next_attempt_at(
        self, attempts_made: int, max_attempts: int, now: datetime
    ) -> Optional[datetime]:
        """When to make the next attempt, or None once the budget is spent."""
        if attempts_made >= max_attempts:
            return None
        return now + timedelta(seconds=self.delay_before(attempts_made + 1))


class RetryManager:
    """Decide what happens to a notification after a failed attempt.

    Outcomes of ``handle_failure`` for a notification in ``sending``:
        - permanent failure         -> failed
        - cancel requested          -> cancelled (no further retries)
        - attempt budget exhausted  -> failed
        - otherwise                 -> queued at now + backoff delay
    """

    def __init__(
        self,
        store: NotificationStore,
        policy: Optional[RetryPolicy] = None,
        listeners: Sequence[TransitionListener] = (),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.policy = policy or RetryPolicy()
        self.listeners = list(listeners)
        self.clock = clock

    def handle_failure(
        self, notification: Notification, result: SendResult
    ) -> Optional[Notification]:
        """Move a ``sending`` notification on after a failed attempt.

        Args:
            notification: Notification as claimed by the dispatcher
            result: Last failed SendResult

        Returns:
            Updated notification, or None if a callback already moved it
        """
        now = self.clock()
        reason = result.error_message or result.error_code
        common = {"failure_reason": reason, "provider": result.provider}

        if not result.retryable:
            return self._move(
                notification, NotificationStatus.FAILED, "permanent_failure", now, **common
            )

        current = self.store.get(notification.id)
        if current is not None and current.cancel_requested:
            return self._move(
                notification,
                NotificationStatus.CANCELLED,
                "cancel_requested",
                now,
                cancelled_at=now,
                **common,
            )

        next_at = self.policy.next_attempt_at(
            notification.attempt_count, notification.max_attempts, now
        )
        if next_at is None:
            logger.warning(
                "retry_budget_exhausted",
                notification_id=notification.id,
                attempts=notification.attempt_count,
                reason=reason,
            )
            return self._move(
                notification, NotificationStatus.FAILED, "retries_exhausted", now, **common
            )

        logger.info(
            "retry_scheduled",
            notification_id=notification.id,
            attempt=notification.attempt_count + 1,
            next_attempt_at=next_at.isoformat(),
            reason=reason,
        )
        return self._move(
            notification,
            NotificationStatus.QUEUED,
            "retry_scheduled",
            now,
            next_attempt_at=next_at,
            **common,
        )

    def manual_retry(self, notification_id: str, actor: str) -> Notification:
        """Reopen a failed or bounced notification for exactly one more attempt.

        Raises:
            NotFoundError: Unknown notification
            ValidationError: Notification is not failed or bounced
        """
        notification = self.store.get(notification_id)
        if notification is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        if notification.status not in (
            NotificationStatus.FAILED,
            NotificationStatus.BOUNCED,
        ):
            raise ValidationError(
                f"Only failed or bounced notifications can be retried "
                f"(status: {notification.status.value})"
            )

        now = self.clock()
        updated = self.store.transition(
            notification_id,
            expected={notification.status},
            target=NotificationStatus.QUEUED,
            reason=f"manual_retry:{actor}",
            manual=True,
            at=now,
            next_attempt_at=now,
            max_attempts=notification.attempt_count + 1,
            cancel_requested=False,
        )
        if updated is None:
            raise ValidationError(f"Notification {notification_id} changed concurrently")
        logger.info(
            "manual_retry_requested", notification_id=notification_id, actor=actor
        )
        self._notify(updated, notification.status)
        return updated

    def _move(
        self,
        notification: Notification,
        target: NotificationStatus,
        reason: str,
        now: datetime,
        **changes,
    ) -> Optional[Notification]:
        updated = self.store.transition(
            notification.id,
            expected={NotificationStatus.SENDING},
            target=target,
            reason=reason,
            at=now,
            **changes,
        )
        if updated is not None:
            self._notify(updated, NotificationStatus.SENDING)
        return updated

    def _notify(self, notification: Notification, previous: NotificationStatus) -> None:
        for listener in self.listeners:
            listener(notification, previous)
