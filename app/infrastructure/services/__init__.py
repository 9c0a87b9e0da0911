"""
Dependency injection services.

Provides type aliases and provider functions for FastAPI dependency injection.
"""

from infrastructure.services.dependencies import (
    SettingsDep,
    AuditLogDep,
    NotificationServiceDep,
    FeatureToggleServiceDep,
    RealtimeHubDep,
)
from infrastructure.services.providers import (
    get_settings,
    get_audit_log,
    get_notification_service,
    get_feature_toggle_service,
    get_realtime_hub,
)

__all__ = [
    "SettingsDep",
    "AuditLogDep",
    "NotificationServiceDep",
    "FeatureToggleServiceDep",
    "RealtimeHubDep",
    "get_settings",
    "get_audit_log",
    "get_notification_service",
    "get_feature_toggle_service",
    "get_realtime_hub",
]
