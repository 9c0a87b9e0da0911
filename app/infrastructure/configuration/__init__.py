"""Infrastructure configuration module - public API.

Centralized configuration for the notification engine using Pydantic
BaseSettings with domain-based organization.

Exports:
    settings: Singleton Settings instance (main configuration object)
    Settings: Main settings class (for testing/overrides)
    NotificationSettings, ProviderSettings, RetrySettings: section classes

Example:
    ```python
    from infrastructure.services import get_settings

    settings = get_settings()

    retry_delays = settings.retry.backoff_schedule
    if settings.is_production:
        ...
    ```
"""

from infrastructure.configuration.settings import Settings, settings
from infrastructure.configuration.features import NotificationSettings
from infrastructure.configuration.integrations import ProviderSettings
from infrastructure.configuration.infrastructure import (
    IdempotencySettings,
    RetrySettings,
    ServerSettings,
)

__all__ = [
    "Settings",
    "settings",
    "NotificationSettings",
    "ProviderSettings",
    "IdempotencySettings",
    "RetrySettings",
    "ServerSettings",
]
