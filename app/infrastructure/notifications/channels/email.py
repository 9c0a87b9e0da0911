"""Email channel adapter."""

from typing import Any, Dict

from infrastructure.notifications.channels.base import CallbackEvent
from infrastructure.notifications.channels.providers import ProviderChannelAdapter
from infrastructure.notifications.models import Channel, Notification
from infrastructure.notifications.rendering import EmailPayload
from infrastructure.operations import OperationResult


class EmailChannelAdapter(ProviderChannelAdapter):
    """Email delivery through a transactional email provider.

    Sends subject, HTML and plain-text bodies with the tenant's sender
    identity. Bounce, open and click events arrive by provider callback.
    """

    CALLBACK_EVENTS = {
        "delivered": CallbackEvent.DELIVERED,
        "bounce": CallbackEvent.BOUNCED,
        "bounced": CallbackEvent.BOUNCED,
        "dropped": CallbackEvent.BOUNCED,
        "open": CallbackEvent.OPENED,
        "opened": CallbackEvent.OPENED,
        "click": CallbackEvent.CLICKED,
        "clicked": CallbackEvent.CLICKED,
        "failed": CallbackEvent.FAILED,
    }

    @property
    def channel(self) -> Channel:
        return Channel.EMAIL

    def resolve_address(self, notification: Notification) -> OperationResult:
        email = notification.recipient.email
        if not email:
            return OperationResult.permanent_error(
                message="Email address required for email channel",
                error_code="MISSING_EMAIL",
            )
        return OperationResult.success(data={"address": str(email)})

    def build_message(
        self, notification: Notification, payload: Dict[str, Any], address: str
    ) -> Dict[str, Any]:
        email = EmailPayload.model_validate(payload)
        return {
            "to": address,
            "from": {"email": email.from_email, "name": email.from_name},
            "reply_to": email.reply_to,
            "subject": email.subject,
            "html": email.html,
            "text": email.text,
            "custom_args": {
                "notification_id": notification.id,
                "tenant_id": notification.tenant_id,
            },
        }
