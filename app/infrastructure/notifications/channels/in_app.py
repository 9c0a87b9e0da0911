"""In-app channel adapter.

The only channel with no external provider. Delivery is synchronous: the
notification is written to the user-visible inbox in the notification
store and reported as delivered.
"""

from typing import Any, Dict

from infrastructure.notifications.channels.base import ChannelAdapter, SendResult
from infrastructure.notifications.models import Channel, Notification, utc_now
from infrastructure.notifications.rendering import InAppPayload
from infrastructure.notifications.store import NotificationStore


class InAppChannelAdapter(ChannelAdapter):
    def __init__(self, store: NotificationStore):
        self.store = store

    @property
    def channel(self) -> Channel:
        return Channel.IN_APP

    @property
    def provider_name(self) -> str:
        return "in_app"

    def send(self, notification: Notification, payload: Dict[str, Any]) -> SendResult:
        content = InAppPayload.model_validate(payload)
        self.store.update(
            notification.id,
            title=content.title,
            body=content.body,
            action_url=content.action_url,
            action_label=content.action_label,
            delivered_at=utc_now(),
        )
        return SendResult.delivered(self.provider_name, notification.id)
