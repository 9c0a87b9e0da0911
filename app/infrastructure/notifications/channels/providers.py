"""Provider clients and the shared provider-backed adapter.

Provider wire protocols are pluggable: an adapter builds a neutral message
dict and hands it to a ProviderClient. ``HttpProviderClient`` posts it as
JSON to a configured endpoint; ``LoggingProviderClient`` is used when no
endpoint is configured (local development) and only logs the message.

Every provider call goes through a circuit breaker. An open circuit,
a timeout or a 5xx is a connectivity-class failure and lets the
dispatcher try the fallback provider.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
import structlog

from infrastructure.notifications.channels.base import (
    CallbackEvent,
    CallbackUpdate,
    ChannelAdapter,
    SendResult,
)
from infrastructure.notifications.models import Notification
from infrastructure.operations import OperationResult, classify_http_error
from infrastructure.resilience import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    register_circuit_breaker,
)

logger = structlog.get_logger()


class ProviderClient(ABC):
    """Transport to one delivery provider."""

    name: str

    @abstractmethod
    def deliver(self, message: Dict[str, Any]) -> OperationResult:
        """Submit a message; success data carries ``message_id``."""

    def health_check(self) -> OperationResult:
        return OperationResult.success(message=f"{self.name} configured")


class HttpProviderClient(ProviderClient):
    """JSON-over-HTTP provider client built on httpx.

    Args:
        name: Provider name (e.g. ``sendgrid``)
        base_url: Provider API base URL
        api_key: Bearer token sent in the Authorization header
        timeout: Per-request timeout in seconds
        client: Optional shared ``httpx.Client``
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._headers = headers
        self._client = client or httpx.Client(timeout=timeout)

    def deliver(self, message: Dict[str, Any]) -> OperationResult:
        try:
            response = self._client.post(
                f"{self.base_url}/messages",
                json=message,
                headers=self._headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            result = classify_http_error(e, provider=self.name)
            logger.warning(
                "provider_request_failed", provider=self.name, **result.log_fields()
            )
            return result

        body = response.json() if response.content else {}
        message_id = body.get("id") or body.get("message_id") or body.get("sid")
        return OperationResult.success(
            data={"message_id": message_id},
            message=f"{self.name} accepted message",
        )

    def health_check(self) -> OperationResult:
        try:
            response = self._client.get(
                f"{self.base_url}/health", headers=self._headers, timeout=self.timeout
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            return classify_http_error(e, provider=self.name)
        return OperationResult.success(message=f"{self.name} reachable")


class LoggingProviderClient(ProviderClient):
    """Provider client that logs messages instead of sending them."""

    def __init__(self, name: str):
        self.name = name

    def deliver(self, message: Dict[str, Any]) -> OperationResult:
        message_id = f"{self.name}-{uuid.uuid4().hex}"
        logger.info(
            "provider_message_logged",
            provider=self.name,
            message_id=message_id,
            fields=sorted(message),
        )
        return OperationResult.success(data={"message_id": message_id})


class ProviderChannelAdapter(ChannelAdapter):
    """Adapter that delivers through a ProviderClient and a circuit breaker.

    Subclasses set ``CALLBACK_EVENTS`` (provider event name to
    CallbackEvent) and implement ``resolve_address`` and ``build_message``.
    """

    CALLBACK_EVENTS: Dict[str, CallbackEvent] = {}

    def __init__(
        self,
        client: ProviderClient,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.client = client
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            name=f"{self.channel.value}_{client.name}",
            failure_threshold=5,
            timeout_seconds=60,
        )
        register_circuit_breaker(self._circuit_breaker)
        logger.info(
            "initialized_channel_adapter",
            channel=self.channel.value,
            provider=client.name,
        )

    @property
    def provider_name(self) -> str:
        return self.client.name

    @abstractmethod
    def resolve_address(self, notification: Notification) -> OperationResult:
        """Validate and return the recipient address in ``data["address"]``."""

    @abstractmethod
    def build_message(
        self, notification: Notification, payload: Dict[str, Any], address: str
    ) -> Dict[str, Any]:
        """Provider-neutral message dict for the client."""

    def send(self, notification: Notification, payload: Dict[str, Any]) -> SendResult:
        resolved = self.resolve_address(notification)
        if not resolved.is_success:
            return SendResult.failure(
                self.provider_name,
                error_code=resolved.error_code or "INVALID_RECIPIENT",
                error_message=resolved.message,
                retryable=False,
            )

        message = self.build_message(notification, payload, resolved.data["address"])
        try:
            result = self._circuit_breaker.call(
                self.client.deliver,
                message,
                is_failure=lambda r: r.is_transient,
            )
        except CircuitBreakerOpenError as e:
            return SendResult.failure(
                self.provider_name,
                error_code="CIRCUIT_OPEN",
                error_message=str(e),
                retryable=True,
            )
        return SendResult.from_operation(result, self.provider_name)

    def parse_callback(self, payload: Dict[str, Any]) -> Optional[CallbackUpdate]:
        """Parse ``{message_id|id|sid, event|status, timestamp, reason}``."""
        raw_event = payload.get("event") or payload.get("status") or ""
        event = self.CALLBACK_EVENTS.get(str(raw_event).lower())
        if event is None:
            logger.info(
                "provider_callback_ignored",
                provider=self.provider_name,
                provider_event=raw_event,
            )
            return None

        message_id = payload.get("message_id") or payload.get("id") or payload.get("sid")
        notification_id = payload.get("notification_id")
        if not message_id and not notification_id:
            return None

        occurred_at = None
        timestamp = payload.get("timestamp")
        if isinstance(timestamp, (int, float)):
            occurred_at = datetime.fromtimestamp(timestamp, tz=timezone.utc)
        elif isinstance(timestamp, str):
            try:
                occurred_at = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
            except ValueError:
                occurred_at = None

        return CallbackUpdate(
            event=event,
            provider_message_id=message_id,
            notification_id=notification_id,
            occurred_at=occurred_at,
            reason=payload.get("reason"),
        )

    def health_check(self) -> OperationResult:
        return self.client.health_check()
