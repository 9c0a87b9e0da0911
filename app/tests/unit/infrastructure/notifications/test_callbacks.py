"""Unit tests for provider callback processing.

Tests cover:
- Signature verification before anything is parsed
- Delivered, bounced and failed transitions
- Open and click engagement without status changes
- Duplicate and out-of-order callbacks
"""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from infrastructure.notifications.callbacks import CallbackProcessor
from infrastructure.notifications.channels.base import CallbackEvent, CallbackUpdate
from infrastructure.notifications.channels.email import EmailChannelAdapter
from infrastructure.notifications.channels.providers import LoggingProviderClient
from infrastructure.notifications.channels.registry import ChannelRegistry
from infrastructure.notifications.errors import (
    NotFoundError,
    SignatureVerificationError,
    ValidationError,
)
from infrastructure.notifications.models import Channel, NotificationStatus
from infrastructure.notifications.signing import sign

SECRET = "callback-secret"


@pytest.fixture
def email_client():
    client = MagicMock()
    client.name = "sendgrid"
    return client


@pytest.fixture
def registry(email_client):
    registry = ChannelRegistry()
    registry.register(EmailChannelAdapter(email_client), primary=True)
    return registry


@pytest.fixture
def engagements():
    return []


@pytest.fixture
def transitions():
    return []


@pytest.fixture
def processor(notification_store, registry, engagements, transitions):
    return CallbackProcessor(
        notification_store,
        registry,
        secrets={"sendgrid": SECRET},
        listeners=[lambda n, previous: transitions.append((previous, n.status))],
        engagement_listeners=[lambda n, metric, at: engagements.append((n.id, metric))],
    )


@pytest.fixture
def sent(notification_store, notification_factory):
    def _factory(message_id="sg-1", status=NotificationStatus.SENT, **overrides):
        return notification_store.add(
            notification_factory(
                status=status,
                provider="sendgrid",
                provider_message_id=message_id,
                **overrides,
            )
        )

    return _factory


def _body(*events):
    payload = events[0] if len(events) == 1 else list(events)
    return json.dumps(payload).encode("utf-8")


@pytest.mark.unit
class TestCallbackVerification:
    def test_unsigned_callback_rejected(self, processor, sent):
        """Test a callback without a signature changes nothing."""
        notification = sent()
        body = _body({"event": "delivered", "message_id": "sg-1"})

        with pytest.raises(SignatureVerificationError):
            processor.handle(Channel.EMAIL, "sendgrid", body, None)

        assert processor.store.get(notification.id).status is NotificationStatus.SENT

    def test_wrong_signature_rejected(self, processor, sent):
        """Test a callback signed with another secret is rejected."""
        sent()
        body = _body({"event": "delivered", "message_id": "sg-1"})

        with pytest.raises(SignatureVerificationError):
            processor.handle(Channel.EMAIL, "sendgrid", body, sign("other", body))

    def test_provider_without_secret_rejected(self, processor):
        """Test a provider with no configured secret cannot post callbacks."""
        body = _body({"event": "delivered", "message_id": "tw-1"})

        with pytest.raises(SignatureVerificationError):
            processor.handle(Channel.SMS, "twilio", body, sign(SECRET, body))

    def test_unknown_adapter(self, processor):
        """Test a signed callback for an unregistered provider raises NotFoundError."""
        processor.secrets["mailgun"] = SECRET
        body = _body({"event": "delivered", "message_id": "mg-1"})

        with pytest.raises(NotFoundError):
            processor.handle(Channel.EMAIL, "mailgun", body, sign(SECRET, body))

    def test_invalid_json(self, processor):
        """Test a signed non-JSON body raises ValidationError."""
        body = b"not json"

        with pytest.raises(ValidationError):
            processor.handle(Channel.EMAIL, "sendgrid", body, sign(SECRET, body))


@pytest.mark.unit
class TestCallbackStatus:
    def test_delivered(self, processor, sent, transitions):
        """Test a delivered event moves sent to delivered with the event time."""
        notification = sent()
        body = _body(
            {"event": "delivered", "message_id": "sg-1", "timestamp": 1773144000}
        )

        summary = processor.handle(Channel.EMAIL, "sendgrid", body, sign(SECRET, body))

        updated = processor.store.get(notification.id)
        assert summary.processed == 1
        assert updated.status is NotificationStatus.DELIVERED
        assert updated.delivered_at == datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
        assert transitions == [(NotificationStatus.SENT, NotificationStatus.DELIVERED)]

    def test_bounce_records_reason(self, processor, sent):
        """Test a bounce stores the provider reason."""
        notification = sent()
        body = _body(
            {"event": "bounce", "message_id": "sg-1", "reason": "mailbox does not exist"}
        )

        processor.handle(Channel.EMAIL, "sendgrid", body, sign(SECRET, body))

        updated = processor.store.get(notification.id)
        assert updated.status is NotificationStatus.BOUNCED
        assert updated.failure_reason == "mailbox does not exist"

    def test_callback_racing_acceptance(self, processor, sent):
        """Test a delivered callback can land while the notification is still sending."""
        notification = sent(status=NotificationStatus.SENDING)

        processor.apply(
            CallbackUpdate(event=CallbackEvent.DELIVERED, provider_message_id="sg-1")
        )

        assert processor.store.get(notification.id).status is NotificationStatus.DELIVERED

    def test_duplicate_callback_is_harmless(self, processor, sent, transitions):
        """Test a repeated delivered event transitions only once."""
        sent()
        body = _body({"event": "delivered", "message_id": "sg-1"})
        signature = sign(SECRET, body)

        processor.handle(Channel.EMAIL, "sendgrid", body, signature)
        processor.handle(Channel.EMAIL, "sendgrid", body, signature)

        assert len(transitions) == 1

    def test_late_bounce_after_delivered_ignored(self, processor, sent):
        """Test an out-of-order bounce does not undo a delivery."""
        notification = sent(status=NotificationStatus.DELIVERED)

        result = processor.apply(
            CallbackUpdate(event=CallbackEvent.BOUNCED, provider_message_id="sg-1")
        )

        assert result.status is NotificationStatus.DELIVERED
        assert processor.store.get(notification.id).status is NotificationStatus.DELIVERED

    def test_batch_summary(self, processor, sent):
        """Test a list body reports processed, ignored and unknown events."""
        sent()
        body = _body(
            {"event": "delivered", "message_id": "sg-1"},
            {"event": "processed", "message_id": "sg-1"},
            {"event": "delivered", "message_id": "sg-unknown"},
        )

        summary = processor.handle(Channel.EMAIL, "sendgrid", body, sign(SECRET, body))

        assert (summary.processed, summary.ignored, summary.not_found) == (1, 1, 1)


@pytest.mark.unit
class TestCallbackEngagement:
    def test_open_sets_read_at_without_status_change(self, processor, sent, engagements, base_time):
        """Test an open marks the notification read and keeps its status."""
        notification = sent(status=NotificationStatus.DELIVERED)

        processor.apply(
            CallbackUpdate(
                event=CallbackEvent.OPENED, provider_message_id="sg-1", occurred_at=base_time
            )
        )

        updated = processor.store.get(notification.id)
        assert updated.read_at == base_time
        assert updated.status is NotificationStatus.DELIVERED
        assert engagements == [(notification.id, "opened")]

    def test_click_keeps_first_click_time(self, processor, sent, base_time):
        """Test a second click does not move clicked_at."""
        notification = sent(status=NotificationStatus.DELIVERED, clicked_at=base_time)

        processor.apply(
            CallbackUpdate(event=CallbackEvent.CLICKED, notification_id=notification.id)
        )

        assert processor.store.get(notification.id).clicked_at == base_time


@pytest.mark.unit
def test_logging_client_returns_message_id():
    """Test the development client accepts every message."""
    result = LoggingProviderClient("sendgrid").deliver({"to": "a@example.com"})

    assert result.is_success
    assert result.data["message_id"].startswith("sendgrid-")
