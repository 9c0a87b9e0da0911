"""SMS channel adapter."""

from typing import Any, Dict

from infrastructure.notifications.channels.base import CallbackEvent
from infrastructure.notifications.channels.providers import ProviderChannelAdapter
from infrastructure.notifications.models import Channel, Notification
from infrastructure.notifications.rendering import SmsPayload
from infrastructure.operations import OperationResult


class SMSChannelAdapter(ProviderChannelAdapter):
    """SMS delivery through an SMS gateway.

    Requires phone numbers in E.164 format (+1234567890). Text is already
    bounded to the SMS length limit at render time.
    """

    CALLBACK_EVENTS = {
        "delivered": CallbackEvent.DELIVERED,
        "undelivered": CallbackEvent.FAILED,
        "failed": CallbackEvent.FAILED,
        "rejected": CallbackEvent.BOUNCED,
    }

    @property
    def channel(self) -> Channel:
        return Channel.SMS

    def resolve_address(self, notification: Notification) -> OperationResult:
        """Validate recipient phone number."""
        phone = notification.recipient.phone_number
        if not phone:
            return OperationResult.permanent_error(
                message="Phone number required for SMS",
                error_code="MISSING_PHONE",
            )

        phone = phone.strip()
        digits = phone[1:]
        if not phone.startswith("+") or not digits.isdigit() or len(digits) > 15:
            return OperationResult.permanent_error(
                message="Phone number must be in E.164 format (+1234567890)",
                error_code="INVALID_PHONE_FORMAT",
            )
        return OperationResult.success(data={"address": phone})

    def build_message(
        self, notification: Notification, payload: Dict[str, Any], address: str
    ) -> Dict[str, Any]:
        sms = SmsPayload.model_validate(payload)
        return {
            "to": address,
            "from": sms.sender_id,
            "body": sms.text,
            "reference": notification.id,
        }
