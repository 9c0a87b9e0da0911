"""Notification and delivery-attempt storage.

The notification store is the durable queue workers pull from. Every
status change goes through ``transition``, a compare-and-swap on the
current status that also enforces the state machine; two workers racing
to claim the same queued notification get exactly one winner.

Delivery attempts are append-only and never mutated after write.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from infrastructure.notifications.errors import NotFoundError, ValidationError
from infrastructure.notifications.models import (
    Channel,
    DeliveryAttempt,
    Notification,
    NotificationStatus,
    StatusChange,
    utc_now,
)
from infrastructure.notifications.state import assert_can_transition

USER_VISIBLE = frozenset({NotificationStatus.SENT, NotificationStatus.DELIVERED})


class NotificationStore(ABC):
    """Storage contract for notifications."""

    @abstractmethod
    def add(self, notification: Notification) -> Notification:
        pass

    @abstractmethod
    def get(self, notification_id: str) -> Optional[Notification]:
        pass

    @abstractmethod
    def transition(
        self,
        notification_id: str,
        expected: Iterable[NotificationStatus],
        target: NotificationStatus,
        reason: Optional[str] = None,
        manual: bool = False,
        at: Optional[datetime] = None,
        increment_attempts: bool = False,
        **changes,
    ) -> Optional[Notification]:
        """Atomically move a notification to ``target``.

        Args:
            notification_id: Notification to change
            expected: Statuses the caller believes the notification is in
            target: New status
            reason: Optional reason recorded in the status history
            manual: Allow manual-retry transitions out of terminal states
            at: Time recorded in the status history (default now)
            increment_attempts: Add one to ``attempt_count`` in the same write
            **changes: Other fields to set in the same write

        Returns:
            The updated notification, or None when the current status is
            not in ``expected`` (another actor got there first)

        Raises:
            NotFoundError: Unknown notification id
            InvalidTransitionError: ``target`` is not reachable
        """

    @abstractmethod
    def update(self, notification_id: str, **changes) -> Notification:
        """Set non-status fields."""

    @abstractmethod
    def fetch_due(self, now: datetime, limit: int) -> List[Notification]:
        """Queued notifications due at ``now``, urgent first."""

    @abstractmethod
    def list_for_user(
        self,
        tenant_id: str,
        user_id: str,
        offset: int = 0,
        limit: int = 20,
        unread_only: bool = False,
        channel: Optional[Channel] = None,
    ) -> Tuple[List[Notification], int]:
        """A page of a user's visible notifications, newest first, and the total."""

    @abstractmethod
    def count_unread(self, tenant_id: str, user_id: str) -> int:
        pass

    @abstractmethod
    def mark_all_read(self, tenant_id: str, user_id: str, at: datetime) -> int:
        pass

    @abstractmethod
    def find_by_provider_message_id(
        self, provider_message_id: str
    ) -> Optional[Notification]:
        pass

    @abstractmethod
    def list_between(
        self, tenant_id: str, start: datetime, end: datetime
    ) -> List[Notification]:
        """Notifications created in ``[start, end)``, oldest first."""


class DeliveryAttemptLog(ABC):
    """Append-only log of provider calls."""

    @abstractmethod
    def append(self, attempt: DeliveryAttempt) -> None:
        pass

    @abstractmethod
    def list_for_notification(self, notification_id: str) -> List[DeliveryAttempt]:
        pass

    @abstractmethod
    def list_between(
        self, tenant_id: str, start: datetime, end: datetime
    ) -> List[DeliveryAttempt]:
        pass


class InMemoryNotificationStore(NotificationStore):
    """Thread-safe in-memory notification store.

    Reads return deep copies so callers can never mutate stored state.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._items: Dict[str, Notification] = {}
        self._by_provider_id: Dict[str, str] = {}

    def add(self, notification: Notification) -> Notification:
        stored = notification.model_copy(deep=True)
        if not stored.history:
            stored.history.append(
                StatusChange(
                    from_status=None, to_status=stored.status, at=stored.created_at
                )
            )
        with self._lock:
            if stored.id in self._items:
                raise ValidationError(f"Notification {stored.id} already exists")
            self._items[stored.id] = stored
            self._index(stored)
            return stored.model_copy(deep=True)

    def get(self, notification_id: str) -> Optional[Notification]:
        with self._lock:
            item = self._items.get(notification_id)
            return item.model_copy(deep=True) if item else None

    def transition(
        self,
        notification_id: str,
        expected: Iterable[NotificationStatus],
        target: NotificationStatus,
        reason: Optional[str] = None,
        manual: bool = False,
        at: Optional[datetime] = None,
        increment_attempts: bool = False,
        **changes,
    ) -> Optional[Notification]:
        expected = frozenset(expected)
        with self._lock:
            item = self._require(notification_id)
            if item.status not in expected:
                return None
            assert_can_transition(notification_id, item.status, target, manual=manual)
            at = at or utc_now()
            updated = item.model_copy(update=changes, deep=True)
            updated.history.append(
                StatusChange(
                    from_status=item.status, to_status=target, at=at, reason=reason
                )
            )
            updated.status = target
            if increment_attempts:
                updated.attempt_count = item.attempt_count + 1
            self._items[notification_id] = updated
            self._index(updated)
            return updated.model_copy(deep=True)

    def update(self, notification_id: str, **changes) -> Notification:
        if "status" in changes or "history" in changes:
            raise ValidationError("Use transition() to change status")
        with self._lock:
            item = self._require(notification_id)
            updated = item.model_copy(update=changes, deep=True)
            self._items[notification_id] = updated
            self._index(updated)
            return updated.model_copy(deep=True)

    def fetch_due(self, now: datetime, limit: int) -> List[Notification]:
        with self._lock:
            due = [
                n
                for n in self._items.values()
                if n.status is NotificationStatus.QUEUED
                and (n.next_attempt_at or n.created_at) <= now
            ]
            due.sort(
                key=lambda n: (
                    -n.priority.rank,
                    n.next_attempt_at or n.created_at,
                    n.created_at,
                )
            )
            return [n.model_copy(deep=True) for n in due[:limit]]

    def list_for_user(
        self,
        tenant_id: str,
        user_id: str,
        offset: int = 0,
        limit: int = 20,
        unread_only: bool = False,
        channel: Optional[Channel] = None,
    ) -> Tuple[List[Notification], int]:
        with self._lock:
            items = [
                n
                for n in self._items.values()
                if self._visible_to(n, tenant_id, user_id)
                and (not unread_only or n.read_at is None)
                and (channel is None or n.channel is channel)
            ]
            items.sort(key=lambda n: n.created_at, reverse=True)
            page = items[offset : offset + limit]
            return [n.model_copy(deep=True) for n in page], len(items)

    def count_unread(self, tenant_id: str, user_id: str) -> int:
        with self._lock:
            return sum(
                1
                for n in self._items.values()
                if self._visible_to(n, tenant_id, user_id) and n.read_at is None
            )

    def mark_all_read(self, tenant_id: str, user_id: str, at: datetime) -> int:
        count = 0
        with self._lock:
            for notification_id, n in list(self._items.items()):
                if self._visible_to(n, tenant_id, user_id) and n.read_at is None:
                    self._items[notification_id] = n.model_copy(update={"read_at": at})
                    count += 1
        return count

    def find_by_provider_message_id(
        self, provider_message_id: str
    ) -> Optional[Notification]:
        with self._lock:
            notification_id = self._by_provider_id.get(provider_message_id)
            if notification_id is None:
                return None
            return self._items[notification_id].model_copy(deep=True)

    def list_between(
        self, tenant_id: str, start: datetime, end: datetime
    ) -> List[Notification]:
        with self._lock:
            items = [
                n
                for n in self._items.values()
                if n.tenant_id == tenant_id and start <= n.created_at < end
            ]
        items.sort(key=lambda n: n.created_at)
        return [n.model_copy(deep=True) for n in items]

    def _require(self, notification_id: str) -> Notification:
        item = self._items.get(notification_id)
        if item is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        return item

    def _index(self, notification: Notification) -> None:
        if notification.provider_message_id:
            self._by_provider_id[notification.provider_message_id] = notification.id

    @staticmethod
    def _visible_to(n: Notification, tenant_id: str, user_id: str) -> bool:
        return (
            n.tenant_id == tenant_id
            and n.recipient.user_id == user_id
            and n.deleted_at is None
            and n.status in USER_VISIBLE
        )


class InMemoryDeliveryAttemptLog(DeliveryAttemptLog):
    def __init__(self):
        self._lock = threading.Lock()
        self._attempts: List[DeliveryAttempt] = []
        self._ids = set()

    def append(self, attempt: DeliveryAttempt) -> None:
        with self._lock:
            if attempt.id in self._ids:
                raise ValidationError(f"Delivery attempt {attempt.id} already recorded")
            self._ids.add(attempt.id)
            self._attempts.append(attempt)

    def list_for_notification(self, notification_id: str) -> List[DeliveryAttempt]:
        with self._lock:
            return [a for a in self._attempts if a.notification_id == notification_id]

    def list_between(
        self, tenant_id: str, start: datetime, end: datetime
    ) -> List[DeliveryAttempt]:
        with self._lock:
            return [
                a
                for a in self._attempts
                if a.tenant_id == tenant_id and start <= a.attempted_at < end
            ]
