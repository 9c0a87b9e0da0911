"""Notification status state machine.

pending -> queued -> sending -> {sent -> delivered | bounced} | failed | cancelled

A worker may only move a notification into ``sending`` from ``queued``.
Terminal statuses are reopened only by an explicit manual retry, which
moves ``failed`` or ``bounced`` back to ``queued``.
"""

from typing import Callable, Dict, FrozenSet

from infrastructure.notifications.errors import InvalidTransitionError
from infrastructure.notifications.models import Notification, NotificationStatus

S = NotificationStatus

TRANSITIONS: Dict[NotificationStatus, FrozenSet[NotificationStatus]] = {
    S.PENDING: frozenset({S.QUEUED, S.CANCELLED}),
    S.QUEUED: frozenset({S.SENDING, S.CANCELLED}),
    # QUEUED again is the retry requeue, CANCELLED honours a cancel request
    # that arrived while the call was in flight.
    S.SENDING: frozenset(
        {S.SENT, S.DELIVERED, S.BOUNCED, S.FAILED, S.QUEUED, S.CANCELLED}
    ),
    S.SENT: frozenset({S.DELIVERED, S.BOUNCED, S.FAILED}),
    S.DELIVERED: frozenset(),
    S.BOUNCED: frozenset(),
    S.FAILED: frozenset(),
    S.CANCELLED: frozenset(),
}

MANUAL_RETRY_TRANSITIONS: Dict[NotificationStatus, FrozenSet[NotificationStatus]] = {
    S.FAILED: frozenset({S.QUEUED}),
    S.BOUNCED: frozenset({S.QUEUED}),
}

CANCELLABLE = frozenset({S.PENDING, S.QUEUED})


def can_transition(
    current: NotificationStatus, target: NotificationStatus, manual: bool = False
) -> bool:
    """Whether ``current -> target`` is an allowed status change."""
    if target in TRANSITIONS[current]:
        return True
    if manual:
        return target in MANUAL_RETRY_TRANSITIONS.get(current, frozenset())
    return False


def assert_can_transition(
    notification_id: str,
    current: NotificationStatus,
    target: NotificationStatus,
    manual: bool = False,
) -> None:
    """Raise InvalidTransitionError when the change is not allowed."""
    if not can_transition(current, target, manual=manual):
        raise InvalidTransitionError(notification_id, current, target)


TransitionListener = Callable[[Notification, NotificationStatus], None]
"""Called with the updated notification and its previous status."""
