"""Infrastructure modules for the notification engine.

Centralized infrastructure components:
- configuration: Settings management (Settings, get_settings)
- logging: Structured logging (get_module_logger, bind_request_context)
- operations: Operation results and provider error classification
- resilience: Circuit breakers for provider calls
- idempotency: Send API idempotency cache
- events: In-process event dispatcher for state changes
- audit: Audit events and sinks
- security: Bearer JWT validation and caller principal
- notifications: The notification delivery engine
- services: Dependency injection providers (SettingsDep, NotificationServiceDep)
"""
