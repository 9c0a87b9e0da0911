"""Unit tests for HttpProviderClient."""

import json

import httpx
import pytest

from infrastructure.notifications.channels.providers import HttpProviderClient
from infrastructure.operations import OperationStatus


def _client(handler, api_key="key-123"):
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpProviderClient(
        "sendgrid", "https://api.mail.example/v3/", api_key=api_key, timeout=1.0, client=http
    )


@pytest.mark.unit
class TestHttpProviderClient:
    def test_deliver_posts_json(self):
        """Test deliver() posts to /messages with a bearer token."""
        captured = {}

        def _handler(request):
            captured["request"] = request
            return httpx.Response(202, json={"id": "sg-77"})

        result = _client(_handler).deliver({"to": "asha@example.com"})

        request = captured["request"]
        assert result.is_success
        assert result.data == {"message_id": "sg-77"}
        assert str(request.url) == "https://api.mail.example/v3/messages"
        assert request.headers["Authorization"] == "Bearer key-123"
        assert json.loads(request.content) == {"to": "asha@example.com"}

    @pytest.mark.parametrize("field", ["message_id", "sid"])
    def test_alternative_id_fields(self, field):
        """Test provider ids are read from id, message_id or sid."""
        result = _client(lambda request: httpx.Response(200, json={field: "x-1"})).deliver({})

        assert result.data["message_id"] == "x-1"

    def test_rate_limit(self):
        """Test a 429 is transient with the provider's Retry-After."""
        result = _client(
            lambda request: httpx.Response(429, headers={"Retry-After": "30"})
        ).deliver({})

        assert result.is_transient
        assert result.error_code == "RATE_LIMITED"
        assert result.retry_after == 30

    def test_unauthorized(self):
        """Test rejected credentials are not transient."""
        result = _client(lambda request: httpx.Response(401)).deliver({})

        assert result.status is OperationStatus.UNAUTHORIZED
        assert not result.is_transient

    def test_timeout(self):
        """Test a read timeout is transient."""

        def _handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        result = _client(_handler).deliver({})

        assert result.is_transient
        assert result.error_code == "TIMEOUT"

