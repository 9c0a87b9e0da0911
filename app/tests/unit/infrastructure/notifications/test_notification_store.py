"""Unit tests for the in-memory notification store and attempt log."""

from datetime import timedelta

import pytest

from infrastructure.notifications.errors import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from infrastructure.notifications.models import (
    AttemptOutcome,
    Channel,
    DeliveryAttempt,
    NotificationPriority,
    NotificationStatus,
)


@pytest.mark.unit
class TestNotificationStoreWrites:
    def test_add_records_initial_history(self, notification_store, notification_factory):
        """Test add() stores the notification with its first history entry."""
        stored = notification_store.add(notification_factory())

        assert len(stored.history) == 1
        assert stored.history[0].from_status is None
        assert stored.history[0].to_status is NotificationStatus.PENDING

    def test_add_rejects_duplicate_id(self, notification_store, notification_factory):
        """Test a second add() with the same id raises ValidationError."""
        notification = notification_factory()
        notification_store.add(notification)

        with pytest.raises(ValidationError):
            notification_store.add(notification)

    def test_get_returns_copy(self, notification_store, notification_factory):
        """Test mutating a returned notification does not change stored state."""
        stored = notification_store.add(notification_factory())

        copy = notification_store.get(stored.id)
        copy.title = "changed"

        assert notification_store.get(stored.id).title == "Order confirmed"

    def test_get_unknown_returns_none(self, notification_store):
        """Test get() for an unknown id returns None."""
        assert notification_store.get("missing") is None

    def test_update_refuses_status_changes(self, notification_store, notification_factory):
        """Test update() cannot be used to change status."""
        stored = notification_store.add(notification_factory())

        with pytest.raises(ValidationError):
            notification_store.update(stored.id, status=NotificationStatus.SENT)

    def test_update_unknown_raises(self, notification_store):
        """Test update() of an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            notification_store.update("missing", title="x")


@pytest.mark.unit
class TestNotificationStoreTransition:
    def test_transition_appends_history(self, notification_store, notification_factory, base_time):
        """Test a transition changes status and appends a StatusChange."""
        stored = notification_store.add(notification_factory())

        updated = notification_store.transition(
            stored.id,
            expected={NotificationStatus.PENDING},
            target=NotificationStatus.QUEUED,
            reason="eligible",
            at=base_time,
            queued_at=base_time,
        )

        assert updated.status is NotificationStatus.QUEUED
        assert updated.queued_at == base_time
        assert updated.history[-1].from_status is NotificationStatus.PENDING
        assert updated.history[-1].reason == "eligible"

    def test_transition_lost_race_returns_none(self, notification_store, notification_factory):
        """Test the compare-and-swap returns None when status is not expected."""
        stored = notification_store.add(
            notification_factory(status=NotificationStatus.SENDING)
        )

        result = notification_store.transition(
            stored.id,
            expected={NotificationStatus.QUEUED},
            target=NotificationStatus.SENDING,
        )

        assert result is None
        assert notification_store.get(stored.id).status is NotificationStatus.SENDING

    def test_transition_validates_state_machine(self, notification_store, notification_factory):
        """Test an illegal target raises even when the expected status matches."""
        stored = notification_store.add(
            notification_factory(status=NotificationStatus.SENT)
        )

        with pytest.raises(InvalidTransitionError):
            notification_store.transition(
                stored.id,
                expected={NotificationStatus.SENT},
                target=NotificationStatus.QUEUED,
            )

    def test_transition_increments_attempts(self, notification_store, notification_factory):
        """Test increment_attempts bumps attempt_count on claim."""
        stored = notification_store.add(
            notification_factory(status=NotificationStatus.QUEUED)
        )

        claimed = notification_store.transition(
            stored.id,
            expected={NotificationStatus.QUEUED},
            target=NotificationStatus.SENDING,
            increment_attempts=True,
        )

        assert claimed.attempt_count == 1

    def test_transition_unknown_raises(self, notification_store):
        """Test transition() of an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            notification_store.transition(
                "missing", {NotificationStatus.QUEUED}, NotificationStatus.SENDING
            )

    def test_provider_message_id_is_indexed(self, notification_store, notification_factory):
        """Test notifications can be found by provider message id."""
        stored = notification_store.add(
            notification_factory(status=NotificationStatus.SENDING)
        )
        notification_store.transition(
            stored.id,
            {NotificationStatus.SENDING},
            NotificationStatus.SENT,
            provider_message_id="sg-123",
        )

        found = notification_store.find_by_provider_message_id("sg-123")

        assert found.id == stored.id
        assert notification_store.find_by_provider_message_id("other") is None


@pytest.mark.unit
class TestNotificationStoreQueue:
    def test_fetch_due_orders_by_priority(self, notification_store, notification_factory, base_time):
        """Test urgent notifications are fetched before older low ones."""
        low = notification_store.add(
            notification_factory(
                status=NotificationStatus.QUEUED,
                priority=NotificationPriority.LOW,
                next_attempt_at=base_time - timedelta(minutes=5),
            )
        )
        urgent = notification_store.add(
            notification_factory(
                status=NotificationStatus.QUEUED,
                priority=NotificationPriority.URGENT,
                next_attempt_at=base_time,
            )
        )

        due = notification_store.fetch_due(base_time, limit=10)

        assert [n.id for n in due] == [urgent.id, low.id]

    def test_fetch_due_skips_future_and_non_queued(
        self, notification_store, notification_factory, base_time
    ):
        """Test only queued notifications whose time has come are fetched."""
        notification_store.add(
            notification_factory(
                status=NotificationStatus.QUEUED,
                next_attempt_at=base_time + timedelta(hours=1),
            )
        )
        notification_store.add(notification_factory(status=NotificationStatus.SENT))

        assert notification_store.fetch_due(base_time, limit=10) == []

    def test_fetch_due_respects_limit(self, notification_store, notification_factory, base_time):
        """Test fetch_due() returns at most ``limit`` items."""
        for _ in range(3):
            notification_store.add(
                notification_factory(status=NotificationStatus.QUEUED, next_attempt_at=base_time)
            )

        assert len(notification_store.fetch_due(base_time, limit=2)) == 2


@pytest.mark.unit
class TestNotificationStoreInbox:
    def test_only_sent_and_delivered_are_visible(self, notification_store, notification_factory):
        """Test the user inbox hides queued, failed and deleted notifications."""
        notification_store.add(notification_factory(status=NotificationStatus.SENT))
        notification_store.add(notification_factory(status=NotificationStatus.DELIVERED))
        notification_store.add(notification_factory(status=NotificationStatus.QUEUED))
        notification_store.add(notification_factory(status=NotificationStatus.FAILED))
        deleted = notification_store.add(
            notification_factory(status=NotificationStatus.SENT)
        )
        notification_store.update(deleted.id, deleted_at=deleted.created_at)

        items, total = notification_store.list_for_user("tenant-1", "user-1")

        assert total == 2
        assert {n.status for n in items} == {
            NotificationStatus.SENT,
            NotificationStatus.DELIVERED,
        }

    def test_list_for_user_is_tenant_scoped(self, notification_store, notification_factory):
        """Test another tenant's notifications for the same user id are hidden."""
        notification_store.add(
            notification_factory(status=NotificationStatus.SENT, tenant_id="tenant-2")
        )

        items, total = notification_store.list_for_user("tenant-1", "user-1")

        assert items == []
        assert total == 0

    def test_list_for_user_filters_channel_and_paginates(
        self, notification_store, notification_factory, base_time
    ):
        """Test channel filter, newest first ordering and offset/limit."""
        for minutes in range(3):
            notification_store.add(
                notification_factory(
                    status=NotificationStatus.DELIVERED,
                    channel=Channel.IN_APP,
                    created_at=base_time + timedelta(minutes=minutes),
                )
            )
        notification_store.add(notification_factory(status=NotificationStatus.SENT))

        items, total = notification_store.list_for_user(
            "tenant-1", "user-1", offset=1, limit=1, channel=Channel.IN_APP
        )

        assert total == 3
        assert items[0].created_at == base_time + timedelta(minutes=1)

    def test_unread_count_and_mark_all_read(self, notification_store, notification_factory, base_time):
        """Test mark_all_read() clears the unread count."""
        notification_store.add(notification_factory(status=NotificationStatus.SENT))
        notification_store.add(notification_factory(status=NotificationStatus.DELIVERED))
        notification_store.add(
            notification_factory(status=NotificationStatus.DELIVERED, read_at=base_time)
        )

        assert notification_store.count_unread("tenant-1", "user-1") == 2
        assert notification_store.mark_all_read("tenant-1", "user-1", base_time) == 2
        assert notification_store.count_unread("tenant-1", "user-1") == 0

    def test_list_between_is_half_open(self, notification_store, notification_factory, base_time):
        """Test list_between() includes start and excludes end."""
        inside = notification_store.add(notification_factory(created_at=base_time))
        notification_store.add(notification_factory(created_at=base_time + timedelta(hours=1)))

        items = notification_store.list_between(
            "tenant-1", base_time, base_time + timedelta(hours=1)
        )

        assert [n.id for n in items] == [inside.id]


@pytest.mark.unit
class TestDeliveryAttemptLog:
    def _attempt(self, base_time, **overrides):
        fields = {
            "notification_id": "n-1",
            "tenant_id": "tenant-1",
            "channel": Channel.EMAIL,
            "attempt_number": 1,
            "provider": "sendgrid",
            "outcome": AttemptOutcome.SENT,
            "attempted_at": base_time,
        }
        fields.update(overrides)
        return DeliveryAttempt(**fields)

    def test_append_is_append_only(self, attempt_log, base_time):
        """Test the same attempt id cannot be written twice."""
        attempt = self._attempt(base_time)
        attempt_log.append(attempt)

        with pytest.raises(ValidationError):
            attempt_log.append(attempt)

    def test_list_for_notification(self, attempt_log, base_time):
        """Test attempts are listed per notification in write order."""
        attempt_log.append(self._attempt(base_time, attempt_number=1))
        attempt_log.append(self._attempt(base_time, attempt_number=2))
        attempt_log.append(self._attempt(base_time, notification_id="n-2"))

        attempts = attempt_log.list_for_notification("n-1")

        assert [a.attempt_number for a in attempts] == [1, 2]

    def test_list_between_filters_tenant_and_range(self, attempt_log, base_time):
        """Test list_between() is tenant scoped and half-open."""
        attempt_log.append(self._attempt(base_time))
        attempt_log.append(self._attempt(base_time, tenant_id="tenant-2"))
        attempt_log.append(self._attempt(base_time + timedelta(days=1)))

        attempts = attempt_log.list_between(
            "tenant-1", base_time, base_time + timedelta(days=1)
        )

        assert len(attempts) == 1
