"""Channel adapter registry.

A static lookup table of adapters keyed by (channel, provider name),
populated once at startup, plus the default primary/fallback provider per
channel. Tenants may override the primary provider for a channel with any
registered provider name.
"""

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

import httpx
import structlog

from infrastructure.notifications.channels.base import ChannelAdapter
from infrastructure.notifications.channels.email import EmailChannelAdapter
from infrastructure.notifications.channels.in_app import InAppChannelAdapter
from infrastructure.notifications.channels.providers import (
    HttpProviderClient,
    LoggingProviderClient,
    ProviderClient,
)
from infrastructure.notifications.channels.push import PushChannelAdapter
from infrastructure.notifications.channels.sms import SMSChannelAdapter
from infrastructure.notifications.channels.webhook import WebhookChannelAdapter
from infrastructure.notifications.errors import ValidationError
from infrastructure.notifications.models import Channel
from infrastructure.notifications.store import NotificationStore
from infrastructure.resilience import CircuitBreaker

if TYPE_CHECKING:
    from infrastructure.configuration import Settings

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProviderRoute:
    primary: ChannelAdapter
    fallback: Optional[ChannelAdapter] = None


class ChannelRegistry:
    """Adapters by channel and provider, with per-channel defaults.

    Example:
        registry = ChannelRegistry()
        registry.register(sendgrid_adapter, primary=True)
        registry.register(ses_adapter, fallback=True)
        route = registry.route(Channel.EMAIL)
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._adapters: Dict[Tuple[Channel, str], ChannelAdapter] = {}
        self._primary: Dict[Channel, str] = {}
        self._fallback: Dict[Channel, str] = {}

    def register(
        self, adapter: ChannelAdapter, primary: bool = False, fallback: bool = False
    ) -> None:
        channel = adapter.channel
        with self._lock:
            self._adapters[(channel, adapter.provider_name)] = adapter
            if primary or channel not in self._primary:
                self._primary[channel] = adapter.provider_name
            if fallback:
                self._fallback[channel] = adapter.provider_name

    def get(self, channel: Channel, provider: str) -> Optional[ChannelAdapter]:
        with self._lock:
            return self._adapters.get((channel, provider))

    def adapters(self) -> List[ChannelAdapter]:
        with self._lock:
            return list(self._adapters.values())

    def route(
        self, channel: Channel, preferred_provider: Optional[str] = None
    ) -> ProviderRoute:
        """Primary and fallback adapters for a channel.

        Args:
            channel: Delivery channel
            preferred_provider: Tenant override for the primary provider

        Raises:
            ValidationError: No adapter registered for the channel
        """
        with self._lock:
            primary_name = self._primary.get(channel)
            if preferred_provider and (channel, preferred_provider) in self._adapters:
                primary_name = preferred_provider
            if primary_name is None:
                raise ValidationError(f"No provider registered for {channel.value}")
            primary = self._adapters[(channel, primary_name)]

            fallback = None
            fallback_name = self._fallback.get(channel)
            if fallback_name and fallback_name != primary_name:
                fallback = self._adapters.get((channel, fallback_name))
            elif fallback_name == primary_name:
                # Tenant override picked the default fallback; fall back to
                # the default primary instead.
                default_primary = self._primary.get(channel)
                if default_primary and default_primary != primary_name:
                    fallback = self._adapters.get((channel, default_primary))
            return ProviderRoute(primary=primary, fallback=fallback)


def _provider_client(
    name: str,
    url: str,
    api_key: Optional[str],
    timeout: float,
    http_client: Optional[httpx.Client],
) -> ProviderClient:
    if url:
        return HttpProviderClient(
            name, url, api_key=api_key, timeout=timeout, client=http_client
        )
    return LoggingProviderClient(name)


def build_channel_registry(
    settings: "Settings",
    store: NotificationStore,
    http_client: Optional[httpx.Client] = None,
) -> ChannelRegistry:
    """Build the registry from provider settings.

    Providers without an API URL get a logging client, so a development
    setup delivers to the log instead of failing.
    """
    providers = settings.providers
    notifications = settings.notifications
    timeout = notifications.adapter_timeout_seconds
    registry = ChannelRegistry()

    adapter_types = {
        Channel.EMAIL: (
            EmailChannelAdapter,
            (providers.EMAIL_PROVIDER, providers.EMAIL_API_URL, providers.EMAIL_API_KEY),
            (
                providers.EMAIL_FALLBACK_PROVIDER,
                providers.EMAIL_FALLBACK_API_URL,
                providers.EMAIL_FALLBACK_API_KEY,
            ),
        ),
        Channel.SMS: (
            SMSChannelAdapter,
            (providers.SMS_PROVIDER, providers.SMS_API_URL, providers.SMS_API_KEY),
            (
                providers.SMS_FALLBACK_PROVIDER,
                providers.SMS_FALLBACK_API_URL,
                providers.SMS_FALLBACK_API_KEY,
            ),
        ),
        Channel.PUSH: (
            PushChannelAdapter,
            (providers.PUSH_PROVIDER, providers.PUSH_API_URL, providers.PUSH_API_KEY),
            (
                providers.PUSH_FALLBACK_PROVIDER,
                providers.PUSH_FALLBACK_API_URL,
                providers.PUSH_FALLBACK_API_KEY,
            ),
        ),
    }

    for channel, (adapter_cls, primary, fallback) in adapter_types.items():
        for (name, url, api_key), is_primary in ((primary, True), (fallback, False)):
            if not name:
                continue
            client = _provider_client(name, url, api_key, timeout, http_client)
            breaker = CircuitBreaker(
                name=f"{channel.value}_{name}",
                failure_threshold=notifications.circuit_breaker_failure_threshold,
                timeout_seconds=notifications.circuit_breaker_timeout_seconds,
            )
            registry.register(
                adapter_cls(client, circuit_breaker=breaker),
                primary=is_primary,
                fallback=not is_primary,
            )

    registry.register(
        WebhookChannelAdapter(
            signing_secret=notifications.webhook_signing_secret,
            timeout=timeout,
            client=http_client,
        ),
        primary=True,
    )
    registry.register(InAppChannelAdapter(store), primary=True)

    logger.info(
        "channel_registry_built",
        adapters=[f"{a.channel.value}:{a.provider_name}" for a in registry.adapters()],
    )
    return registry
