"""Multi-channel notification delivery engine.

Turns a logical event ("order confirmed", "payment failed", a campaign)
into delivered messages over email, SMS, push, webhook and in-app:

- Eligibility: global kill-switch, tenant toggles and quotas, user
  opt-outs and quiet hours, decided per channel
- Rendering: ``#{variable}`` templates with tenant branding
- Dispatch: single-flight claim, primary/fallback provider routing,
  bounded adapter timeouts
- Retry: transient failures retried on a 0/60/300/900 second schedule
- Scheduling: one-time, recurring and event-triggered sends
- Analytics: idempotent per channel/day and per campaign counters

Usage:
    from infrastructure.notifications import (
        Channel,
        NotificationService,
        Recipient,
        SendRequest,
    )

    service = NotificationService(settings)
    response = service.send(
        SendRequest(
            tenant_id="tenant-1",
            recipient=Recipient(user_id="user-42", email="asha@example.com"),
            event_type="order_confirmed",
            channels=[Channel.EMAIL, Channel.IN_APP],
            variables={"name": "Asha", "order_id": "ORD-42", "total": "₹500"},
        )
    )
    response.decisions  # one allow/defer/deny decision per channel

    # Background jobs
    service.process_due()
    service.run_scheduler()
"""

# Models
from infrastructure.notifications.models import (
    Campaign,
    CampaignAudience,
    Channel,
    DeliveryAttempt,
    Notification,
    NotificationCategory,
    NotificationMetadata,
    NotificationPriority,
    NotificationStatus,
    NotificationTypeDefinition,
    Recipient,
    SendRequest,
)

# Errors
from infrastructure.notifications.errors import (
    InvalidTransitionError,
    NotFoundError,
    NotificationError,
    PermanentProviderError,
    PermissionDeniedError,
    QuotaExceeded,
    SignatureVerificationError,
    TemplateError,
    TemplateRenderError,
    TransientProviderError,
    ValidationError,
)

# Eligibility
from infrastructure.notifications.eligibility import (
    EligibilityDecision,
    EligibilityDenied,
    EligibilityResolver,
)

# Administration
from infrastructure.notifications.admin import (
    FeatureToggleService,
    GlobalControlsUpdate,
    TenantSettingsUpdate,
)

# Scheduling
from infrastructure.notifications.scheduler import (
    NotificationScheduler,
    Schedule,
    ScheduleKind,
    ScheduleStatus,
    parse_recurrence_rule,
)

# Realtime push
from infrastructure.notifications.realtime import (
    RealtimeHub,
    register_realtime_handler,
)

# Facade
from infrastructure.notifications.service import (
    ChannelDecision,
    NotificationService,
    SendResponse,
)

__all__ = [
    # Models
    "Campaign",
    "CampaignAudience",
    "Channel",
    "DeliveryAttempt",
    "Notification",
    "NotificationCategory",
    "NotificationMetadata",
    "NotificationPriority",
    "NotificationStatus",
    "NotificationTypeDefinition",
    "Recipient",
    "SendRequest",
    # Errors
    "InvalidTransitionError",
    "NotFoundError",
    "NotificationError",
    "PermanentProviderError",
    "PermissionDeniedError",
    "QuotaExceeded",
    "SignatureVerificationError",
    "TemplateError",
    "TemplateRenderError",
    "TransientProviderError",
    "ValidationError",
    # Eligibility
    "EligibilityDecision",
    "EligibilityDenied",
    "EligibilityResolver",
    # Administration
    "FeatureToggleService",
    "GlobalControlsUpdate",
    "TenantSettingsUpdate",
    # Scheduling
    "NotificationScheduler",
    "Schedule",
    "ScheduleKind",
    "ScheduleStatus",
    "parse_recurrence_rule",
    # Realtime push
    "RealtimeHub",
    "register_realtime_handler",
    # Facade
    "ChannelDecision",
    "NotificationService",
    "SendResponse",
]
