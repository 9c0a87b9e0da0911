"""Integration settings __init__ - exports all integration settings."""

from infrastructure.configuration.integrations.providers import ProviderSettings

__all__ = [
    "ProviderSettings",
]
