"""Unit tests for WebhookChannelAdapter using an httpx mock transport."""

import json

import httpx
import pytest

from infrastructure.notifications.channels.base import SendOutcome
from infrastructure.notifications.channels.webhook import WebhookChannelAdapter
from infrastructure.notifications.signing import verify

ENVELOPE_PAYLOAD = {
    "envelope": {
        "event": "order_confirmed",
        "tenant_id": "tenant-1",
        "timestamp": "2026-03-10T12:00:00+00:00",
        "notification_id": "n-1",
        "data": {"order_id": "ORD-42"},
    }
}


def _adapter(handler, secret="webhook-secret"):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return WebhookChannelAdapter(signing_secret=secret, timeout=1.0, client=client)


@pytest.fixture
def webhook_notification(notification_factory, recipient_factory):
    return notification_factory(
        recipient=recipient_factory(webhook_url="https://hooks.tenant.example/orders")
    )


@pytest.mark.unit
class TestWebhookSend:
    def test_signed_delivery(self, webhook_notification):
        """Test the envelope is posted compact and signed."""
        captured = {}

        def _handler(request: httpx.Request) -> httpx.Response:
            captured["request"] = request
            return httpx.Response(200, headers={"X-Request-ID": "req-9"})

        result = _adapter(_handler).send(webhook_notification, ENVELOPE_PAYLOAD)

        request = captured["request"]
        assert result.outcome is SendOutcome.DELIVERED
        assert result.provider_message_id == "req-9"
        assert str(request.url) == "https://hooks.tenant.example/orders"
        assert request.headers["X-Webhook-Event"] == "order_confirmed"
        assert request.headers["X-Notification-ID"] == webhook_notification.id
        assert json.loads(request.content) == ENVELOPE_PAYLOAD["envelope"]
        verify("webhook-secret", request.content, request.headers["X-Webhook-Signature"])

    def test_unsigned_without_secret(self, webhook_notification):
        """Test no signature header is sent without a secret."""
        captured = {}

        def _handler(request):
            captured["request"] = request
            return httpx.Response(204)

        result = _adapter(_handler, secret="").send(webhook_notification, ENVELOPE_PAYLOAD)

        assert "X-Webhook-Signature" not in captured["request"].headers
        assert result.provider_message_id == webhook_notification.id

    def test_server_error_is_retryable(self, webhook_notification):
        """Test a 5xx from the receiver is a transient failure."""
        result = _adapter(lambda request: httpx.Response(502)).send(
            webhook_notification, ENVELOPE_PAYLOAD
        )

        assert result.outcome is SendOutcome.FAILED
        assert result.retryable is True
        assert result.error_code == "SERVER_ERROR"

    def test_client_error_is_permanent(self, webhook_notification):
        """Test a 400 from the receiver is a permanent failure."""
        result = _adapter(lambda request: httpx.Response(400, text="bad")).send(
            webhook_notification, ENVELOPE_PAYLOAD
        )

        assert result.retryable is False
        assert result.error_code == "HTTP_ERROR"

    def test_connection_error_is_retryable(self, webhook_notification):
        """Test a refused connection is transient."""

        def _handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = _adapter(_handler).send(webhook_notification, ENVELOPE_PAYLOAD)

        assert result.retryable is True
        assert result.error_code == "CONNECTION_ERROR"

    def test_missing_url(self, notification_factory):
        """Test a recipient without a webhook URL fails permanently."""
        result = _adapter(lambda request: httpx.Response(200)).send(
            notification_factory(), ENVELOPE_PAYLOAD
        )

        assert result.error_code == "MISSING_WEBHOOK_URL"
        assert result.retryable is False
