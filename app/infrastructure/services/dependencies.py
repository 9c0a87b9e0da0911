"""
Type aliases for FastAPI dependency injection.

Provides annotated type hints for common infrastructure dependencies.
"""

from typing import Annotated
from fastapi import Depends
from infrastructure.audit import AuditLog
from infrastructure.configuration import Settings
from infrastructure.notifications import (
    FeatureToggleService,
    NotificationService,
    RealtimeHub,
)
from infrastructure.services.providers import (
    get_settings,
    get_audit_log,
    get_notification_service,
    get_feature_toggle_service,
    get_realtime_hub,
)

# Settings dependency
SettingsDep = Annotated[Settings, Depends(get_settings)]

# Audit log dependency
AuditLogDep = Annotated[AuditLog, Depends(get_audit_log)]

# Notification engine facade
NotificationServiceDep = Annotated[
    NotificationService, Depends(get_notification_service)
]

# Super-admin toggle management
FeatureToggleServiceDep = Annotated[
    FeatureToggleService, Depends(get_feature_toggle_service)
]

# Open inbox websockets
RealtimeHubDep = Annotated[RealtimeHub, Depends(get_realtime_hub)]

__all__ = [
    "SettingsDep",
    "AuditLogDep",
    "NotificationServiceDep",
    "FeatureToggleServiceDep",
    "RealtimeHubDep",
]
