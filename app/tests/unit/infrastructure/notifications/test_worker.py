"""Unit tests for DispatchWorkerPool."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from infrastructure.notifications.channels.base import SendResult
from infrastructure.notifications.channels.registry import ChannelRegistry
from infrastructure.notifications.dispatcher import NotificationDispatcher
from infrastructure.notifications.models import NotificationStatus
from infrastructure.notifications.retry import RetryManager
from infrastructure.notifications.worker import DispatchWorkerPool


@pytest.fixture
def adapter(stub_adapter_factory):
    return stub_adapter_factory(provider="sendgrid")


@pytest.fixture
def pool(notification_store, attempt_log, adapter, clock):
    registry = ChannelRegistry()
    registry.register(adapter, primary=True)
    dispatcher = NotificationDispatcher(
        store=notification_store,
        attempts=attempt_log,
        registry=registry,
        retry_manager=RetryManager(notification_store, clock=clock),
        clock=clock,
    )
    pool = DispatchWorkerPool(
        dispatcher, notification_store, worker_count=2, batch_size=10, clock=clock
    )
    yield pool
    pool.shutdown()
    dispatcher.shutdown()


@pytest.fixture
def enqueue(notification_store, notification_factory, base_time):
    def _enqueue(count=1, **overrides):
        fields = {"status": NotificationStatus.QUEUED, "next_attempt_at": base_time}
        fields.update(overrides)
        return [notification_store.add(notification_factory(**fields)) for _ in range(count)]

    return _enqueue


@pytest.mark.unit
class TestDispatchWorkerPool:
    def test_empty_batch(self, pool):
        """Test nothing due returns zeroed stats."""
        assert pool.process_batch() == {
            "processed": 0,
            "sent": 0,
            "retried": 0,
            "failed": 0,
            "cancelled": 0,
            "skipped": 0,
        }

    def test_batch_sends_due_notifications(self, pool, enqueue, notification_store):
        """Test every due notification is dispatched once."""
        notifications = enqueue(3)

        stats = pool.process_batch()

        assert stats["processed"] == 3
        assert stats["sent"] == 3
        assert all(
            notification_store.get(n.id).status is NotificationStatus.SENT
            for n in notifications
        )

    def test_future_notifications_wait(self, pool, enqueue, base_time):
        """Test notifications scheduled later are not picked up."""
        enqueue(1, next_attempt_at=base_time + timedelta(minutes=5))

        assert pool.process_batch()["processed"] == 0

    def test_outcomes_are_counted(self, pool, enqueue, adapter, base_time):
        """Test retried, failed and cancelled results are tallied separately."""
        adapter.results = [
            SendResult.failure("sendgrid", "SERVER_ERROR", "HTTP 503", retryable=True),
        ]
        adapter.default = SendResult.failure("sendgrid", "HTTP_ERROR", "rejected", retryable=False)
        enqueue(1)
        enqueue(1)
        enqueue(1, expires_at=base_time - timedelta(seconds=1))

        stats = pool.process_batch()

        assert stats["retried"] == 1
        assert stats["failed"] == 1
        assert stats["cancelled"] == 1

    def test_dispatch_exception_is_skipped(self, notification_store, enqueue, clock):
        """Test an unexpected dispatcher error does not stop the batch."""
        dispatcher = MagicMock()
        dispatcher.dispatch.side_effect = RuntimeError("boom")
        pool = DispatchWorkerPool(dispatcher, notification_store, worker_count=1, clock=clock)
        enqueue(2)

        try:
            stats = pool.process_batch()
        finally:
            pool.shutdown()

        assert stats["skipped"] == 2

    def test_drain_follows_retries(self, pool, enqueue, adapter, clock):
        """Test drain() stops once nothing is due at the given time."""
        adapter.results = [
            SendResult.failure("sendgrid", "SERVER_ERROR", "HTTP 503", retryable=True),
        ]
        enqueue(1)

        first = pool.drain()
        clock.advance(60)
        second = pool.drain()

        assert first["retried"] == 1
        assert second["sent"] == 1
