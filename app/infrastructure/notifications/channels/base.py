"""Channel adapter abstract base class.

Every channel/provider pair (email via SendGrid, SMS via Twilio, push via
FCM, webhook, in-app) implements this contract. The dispatcher only talks
to adapters through it, so providers can be swapped without touching
dispatch logic.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from infrastructure.notifications.models import (
    Channel,
    Notification,
    NotificationStatus,
)
from infrastructure.operations import OperationResult


class SendOutcome(Enum):
    """Adapter-level outcome of a send call."""

    ACCEPTED = "accepted"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass(frozen=True)
class SendResult:
    """Result of ``ChannelAdapter.send``.

    Attributes:
        outcome: ACCEPTED (provider took it), DELIVERED (confirmed) or FAILED
        provider: Provider that handled the call
        provider_message_id: Provider-assigned id on success
        error_code: Machine error code on failure
        error_message: Human-readable failure message
        retryable: True for connectivity-class failures (network, 5xx,
            timeout, open circuit); False for invalid address or rejected
            content
    """

    outcome: SendOutcome
    provider: str
    provider_message_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    retryable: bool = False

    @property
    def is_success(self) -> bool:
        return self.outcome is not SendOutcome.FAILED

    @classmethod
    def accepted(cls, provider: str, provider_message_id: Optional[str]) -> "SendResult":
        return cls(SendOutcome.ACCEPTED, provider, provider_message_id)

    @classmethod
    def delivered(cls, provider: str, provider_message_id: Optional[str]) -> "SendResult":
        return cls(SendOutcome.DELIVERED, provider, provider_message_id)

    @classmethod
    def failure(
        cls,
        provider: str,
        error_code: str,
        error_message: str,
        retryable: bool,
    ) -> "SendResult":
        return cls(
            SendOutcome.FAILED,
            provider,
            error_code=error_code,
            error_message=error_message,
            retryable=retryable,
        )

    @classmethod
    def from_operation(cls, result: OperationResult, provider: str) -> "SendResult":
        """Convert a provider client OperationResult."""
        if result.is_success:
            data = result.data or {}
            return cls.accepted(provider, data.get("message_id"))
        return cls.failure(
            provider,
            error_code=result.error_code or result.status.value.upper(),
            error_message=result.message,
            retryable=result.is_transient,
        )


class CallbackEvent(Enum):
    """Normalized provider callback events."""

    DELIVERED = "delivered"
    BOUNCED = "bounced"
    OPENED = "opened"
    CLICKED = "clicked"
    FAILED = "failed"

    @property
    def status(self) -> Optional[NotificationStatus]:
        """Delivery status this event moves to; None for engagement events."""
        return {
            CallbackEvent.DELIVERED: NotificationStatus.DELIVERED,
            CallbackEvent.BOUNCED: NotificationStatus.BOUNCED,
            CallbackEvent.FAILED: NotificationStatus.FAILED,
        }.get(self)


@dataclass(frozen=True)
class CallbackUpdate:
    """Parsed provider callback.

    One of ``provider_message_id`` or ``notification_id`` identifies the
    notification.
    """

    event: CallbackEvent
    provider_message_id: Optional[str] = None
    notification_id: Optional[str] = None
    occurred_at: Optional[datetime] = None
    reason: Optional[str] = None


class ChannelAdapter(ABC):
    """Abstract base class for channel adapters.

    Example Implementation:
        class PagerChannelAdapter(ChannelAdapter):

            @property
            def channel(self) -> Channel:
                return Channel.SMS

            @property
            def provider_name(self) -> str:
                return "pager"

            def send(self, notification, payload) -> SendResult:
                message_id = pager.page(notification.recipient.phone_number,
                                        payload["text"])
                return SendResult.accepted(self.provider_name, message_id)
    """

    @property
    @abstractmethod
    def channel(self) -> Channel:
        """Channel this adapter delivers on."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier used for routing, logging and callbacks."""

    @abstractmethod
    def send(self, notification: Notification, payload: Dict[str, Any]) -> SendResult:
        """Deliver one notification.

        Must not raise for provider failures: return a FAILED SendResult
        with ``retryable`` set for connectivity-class errors.

        Args:
            notification: Notification being delivered
            payload: Rendered channel payload

        Returns:
            SendResult
        """

    def parse_callback(self, payload: Dict[str, Any]) -> Optional[CallbackUpdate]:
        """Parse a provider callback body; None when the event is ignored."""
        return None

    def health_check(self) -> OperationResult:
        return OperationResult.success(message=f"{self.provider_name} ready")
