"""Test fixtures for notification engine tests."""

from typing import Any, Dict, List, Optional

import pytest

from infrastructure.notifications.channels.base import ChannelAdapter, SendResult
from infrastructure.notifications.models import (
    Channel,
    Notification,
    NotificationPriority,
    NotificationStatus,
    Recipient,
    SendRequest,
)
from infrastructure.notifications.preferences import (
    InMemoryGlobalControlsStore,
    InMemoryPreferenceStore,
    InMemoryTenantSettingsStore,
    UserPreference,
)
from infrastructure.notifications.quota import InMemoryQuotaStore
from infrastructure.notifications.service import NotificationService
from infrastructure.notifications.store import (
    InMemoryDeliveryAttemptLog,
    InMemoryNotificationStore,
)
from infrastructure.notifications.templates import NotificationTemplate

TENANT = "tenant-1"


class StubAdapter(ChannelAdapter):
    """Channel adapter returning queued results, then ``default``."""

    def __init__(
        self,
        channel: Channel = Channel.EMAIL,
        provider: str = "stub",
        results: Optional[List[SendResult]] = None,
        default: Optional[SendResult] = None,
    ):
        self._channel = channel
        self._provider = provider
        self.results = list(results or [])
        self.default = default or SendResult.accepted(provider, f"{provider}-msg")
        self.calls: List[str] = []

    @property
    def channel(self) -> Channel:
        return self._channel

    @property
    def provider_name(self) -> str:
        return self._provider

    def send(self, notification: Notification, payload: Dict[str, Any]) -> SendResult:
        self.calls.append(notification.id)
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return self.default


@pytest.fixture
def stub_adapter_factory():
    """Factory for StubAdapter instances.

    Example:
        adapter = stub_adapter_factory(results=[SendResult.failure(...)])
    """

    def _factory(**kwargs) -> StubAdapter:
        return StubAdapter(**kwargs)

    return _factory


@pytest.fixture
def recipient_factory():
    """Factory for creating Recipient instances with every address set."""

    def _factory(
        user_id: str = "user-1",
        email: Optional[str] = "asha@example.com",
        phone_number: Optional[str] = "+919812345678",
        device_token: Optional[str] = "device-token-1",
        webhook_url: Optional[str] = None,
    ) -> Recipient:
        return Recipient(
            user_id=user_id,
            email=email,
            phone_number=phone_number,
            device_token=device_token,
            webhook_url=webhook_url,
        )

    return _factory


@pytest.fixture
def notification_factory(recipient_factory, base_time):
    """Factory for creating Notification instances.

    Example:
        queued = notification_factory(status=NotificationStatus.QUEUED)
    """

    def _factory(
        channel: Channel = Channel.EMAIL,
        status: NotificationStatus = NotificationStatus.PENDING,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        tenant_id: str = TENANT,
        recipient: Optional[Recipient] = None,
        **overrides,
    ) -> Notification:
        fields = {
            "tenant_id": tenant_id,
            "recipient": recipient or recipient_factory(),
            "event_type": "order_confirmed",
            "channel": channel,
            "priority": priority,
            "status": status,
            "title": "Order confirmed",
            "body": "Your order ORD-42 is confirmed.",
            "created_at": base_time,
        }
        fields.update(overrides)
        return Notification(**fields)

    return _factory


@pytest.fixture
def send_request_factory(recipient_factory):
    """Factory for Send API requests for an order confirmation."""

    def _factory(
        channels: Optional[List[Channel]] = None,
        event_type: str = "order_confirmed",
        variables: Optional[Dict[str, Any]] = None,
        recipient: Optional[Recipient] = None,
        tenant_id: str = TENANT,
        **overrides,
    ) -> SendRequest:
        return SendRequest(
            tenant_id=tenant_id,
            recipient=recipient or recipient_factory(),
            event_type=event_type,
            channels=channels or [Channel.EMAIL],
            variables=(
                variables
                if variables is not None
                else {"name": "Asha", "order_id": "ORD-42", "total": "₹500"}
            ),
            **overrides,
        )

    return _factory


@pytest.fixture
def template_factory():
    def _factory(**overrides) -> NotificationTemplate:
        fields = {
            "tenant_id": TENANT,
            "event_type": "order_confirmed",
            "channel": Channel.EMAIL,
            "subject": "Thanks #{name}",
            "body": "Order #{order_id} is confirmed.",
        }
        fields.update(overrides)
        return NotificationTemplate(**fields)

    return _factory


@pytest.fixture
def preference_factory():
    def _factory(user_id: str = "user-1", **overrides) -> UserPreference:
        return UserPreference(tenant_id=TENANT, user_id=user_id, **overrides)

    return _factory


@pytest.fixture
def notification_store():
    return InMemoryNotificationStore()


@pytest.fixture
def attempt_log():
    return InMemoryDeliveryAttemptLog()


@pytest.fixture
def tenant_store():
    return InMemoryTenantSettingsStore()


@pytest.fixture
def global_store():
    return InMemoryGlobalControlsStore()


@pytest.fixture
def preference_store():
    return InMemoryPreferenceStore()


@pytest.fixture
def quota_store():
    return InMemoryQuotaStore()


@pytest.fixture
def service(settings, clock):
    """Fully wired in-memory engine on a controllable clock."""
    engine = NotificationService(settings, clock=clock)
    yield engine
    engine.shutdown()
