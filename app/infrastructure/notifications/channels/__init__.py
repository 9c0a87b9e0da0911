"""Channel adapters and the provider registry."""

from infrastructure.notifications.channels.base import (
    CallbackEvent,
    CallbackUpdate,
    ChannelAdapter,
    SendOutcome,
    SendResult,
)
from infrastructure.notifications.channels.email import EmailChannelAdapter
from infrastructure.notifications.channels.in_app import InAppChannelAdapter
from infrastructure.notifications.channels.providers import (
    HttpProviderClient,
    LoggingProviderClient,
    ProviderChannelAdapter,
    ProviderClient,
)
from infrastructure.notifications.channels.push import PushChannelAdapter
from infrastructure.notifications.channels.registry import (
    ChannelRegistry,
    ProviderRoute,
    build_channel_registry,
)
from infrastructure.notifications.channels.sms import SMSChannelAdapter
from infrastructure.notifications.channels.webhook import WebhookChannelAdapter

__all__ = [
    "CallbackEvent",
    "CallbackUpdate",
    "ChannelAdapter",
    "SendOutcome",
    "SendResult",
    "EmailChannelAdapter",
    "InAppChannelAdapter",
    "HttpProviderClient",
    "LoggingProviderClient",
    "ProviderChannelAdapter",
    "ProviderClient",
    "PushChannelAdapter",
    "ChannelRegistry",
    "ProviderRoute",
    "build_channel_registry",
    "SMSChannelAdapter",
    "WebhookChannelAdapter",
]
