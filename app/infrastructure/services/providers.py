"""
Factory functions for dependency injection.

Provides application-scoped singleton providers for core infrastructure services.
"""

from functools import lru_cache

from infrastructure.audit import AuditLog, InMemoryAuditLog
from infrastructure.configuration import Settings
from infrastructure.notifications import (
    FeatureToggleService,
    NotificationService,
    RealtimeHub,
)


@lru_cache
def get_settings() -> Settings:
    """
    Get application-scoped settings singleton.

    This is the single source of truth for settings across the entire application.
    The @lru_cache decorator ensures only ONE instance is created per process,
    even if called from multiple packages.

    Infrastructure packages should use this directly to ensure singleton consistency:
        from infrastructure.services.providers import get_settings
        settings = get_settings()

    Application code should use the DI type alias for testability:
        from infrastructure.services import SettingsDep
        @router.get("/config")
        def get_config(settings: SettingsDep):
            return settings.model_dump()

    Returns:
        Settings: Cached settings instance loaded from environment.
    """
    return Settings()


@lru_cache
def get_audit_log() -> AuditLog:
    """
    Get application-scoped audit log singleton.

    Shared by the event audit handler and the feature toggle service so
    toggle history and notification events land in the same sink.

    Returns:
        AuditLog: Cached in-process audit log.
    """
    return InMemoryAuditLog()


@lru_cache
def get_notification_service() -> NotificationService:
    """
    Get application-scoped notification service singleton.

    Returns:
        NotificationService: Engine facade wired from application settings.

    Usage:
        @router.post("/notifications")
        def send(service: NotificationServiceDep, request: SendRequest):
            return service.send(request)
    """
    return NotificationService(get_settings())


@lru_cache
def get_feature_toggle_service() -> FeatureToggleService:
    """
    Get application-scoped feature toggle service singleton.

    Operates on the same tenant settings and global controls stores as the
    notification service, so a toggle change applies to the next send.

    Returns:
        FeatureToggleService: Audited toggle service.
    """
    service = get_notification_service()
    return FeatureToggleService(
        tenant_store=service.tenant_settings,
        global_store=service.global_controls,
        audit_log=get_audit_log(),
    )


@lru_cache
def get_realtime_hub() -> RealtimeHub:
    """
    Get application-scoped realtime hub singleton.

    Holds the open inbox websockets; the notification service's events are
    pushed through it once ``register_realtime_handler`` has run at startup.
    """
    return RealtimeHub()
