"""Webhook channel adapter.

Posts the rendered event envelope to the recipient's endpoint. The body is
signed with HMAC-SHA256 and the signature sent as
``X-Webhook-Signature: sha256=<hex>`` so receivers can verify it. A 2xx
response counts as delivered.
"""

import json
from typing import Any, Dict, Optional

import httpx
import structlog

from infrastructure.notifications.channels.base import ChannelAdapter, SendResult
from infrastructure.notifications.models import Channel, Notification
from infrastructure.notifications.rendering import WebhookPayload
from infrastructure.notifications.signing import sign
from infrastructure.operations import classify_http_error

logger = structlog.get_logger()

SIGNATURE_HEADER = "X-Webhook-Signature"


class WebhookChannelAdapter(ChannelAdapter):
    """Signed JSON webhook delivery.

    Args:
        signing_secret: HMAC secret; requests are unsigned when empty
        timeout: Request timeout in seconds
        client: Optional shared ``httpx.Client``
    """

    def __init__(
        self,
        signing_secret: str = "",
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.signing_secret = signing_secret
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def channel(self) -> Channel:
        return Channel.WEBHOOK

    @property
    def provider_name(self) -> str:
        return "webhook"

    def send(self, notification: Notification, payload: Dict[str, Any]) -> SendResult:
        url = notification.recipient.webhook_url
        if not url:
            return SendResult.failure(
                self.provider_name,
                error_code="MISSING_WEBHOOK_URL",
                error_message="Webhook URL required for webhook channel",
                retryable=False,
            )

        envelope = WebhookPayload.model_validate(payload).envelope
        body = json.dumps(envelope, separators=(",", ":"), default=str).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Event": str(envelope.get("event", "")),
            "X-Notification-ID": notification.id,
        }
        if self.signing_secret:
            headers[SIGNATURE_HEADER] = sign(self.signing_secret, body)

        try:
            response = self._client.post(
                url, content=body, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            result = classify_http_error(e, provider=self.provider_name)
            logger.warning(
                "webhook_delivery_failed",
                notification_id=notification.id,
                error=result.message,
                retryable=result.is_transient,
            )
            return SendResult.from_operation(result, self.provider_name)

        return SendResult.delivered(
            self.provider_name, response.headers.get("X-Request-ID") or notification.id
        )
