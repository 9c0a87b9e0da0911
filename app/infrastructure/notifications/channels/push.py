"""Push channel adapter."""

from typing import Any, Dict

from infrastructure.notifications.channels.base import CallbackEvent
from infrastructure.notifications.channels.providers import ProviderChannelAdapter
from infrastructure.notifications.models import Channel, Notification
from infrastructure.notifications.rendering import PushPayload
from infrastructure.operations import OperationResult


class PushChannelAdapter(ProviderChannelAdapter):
    """Mobile/web push through a push gateway (FCM style)."""

    CALLBACK_EVENTS = {
        "delivered": CallbackEvent.DELIVERED,
        "opened": CallbackEvent.OPENED,
        "open": CallbackEvent.OPENED,
        "clicked": CallbackEvent.CLICKED,
        "unregistered": CallbackEvent.BOUNCED,
        "invalid_token": CallbackEvent.BOUNCED,
        "failed": CallbackEvent.FAILED,
    }

    @property
    def channel(self) -> Channel:
        return Channel.PUSH

    def resolve_address(self, notification: Notification) -> OperationResult:
        token = notification.recipient.device_token
        if not token:
            return OperationResult.permanent_error(
                message="Device token required for push",
                error_code="MISSING_DEVICE_TOKEN",
            )
        return OperationResult.success(data={"address": token})

    def build_message(
        self, notification: Notification, payload: Dict[str, Any], address: str
    ) -> Dict[str, Any]:
        push = PushPayload.model_validate(payload)
        return {
            "token": address,
            "notification": {"title": push.title, "body": push.body},
            "data": push.data,
            "priority": "high" if notification.priority.rank >= 2 else "normal",
        }
