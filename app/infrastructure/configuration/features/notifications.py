"""Notification engine behaviour settings."""

from typing import Dict

from pydantic import Field, field_validator

from infrastructure.configuration.base import FeatureSettings


class NotificationSettings(FeatureSettings):
    """Notification delivery engine configuration.

    Environment Variables:
        NOTIFICATIONS_GLOBAL_ENABLED: Initial state of the global kill-switch
        NOTIFICATIONS_DEFAULT_TIMEZONE: Timezone used when a user has none
        NOTIFICATIONS_ADAPTER_TIMEOUT_SECONDS: Per provider call timeout (default: 10s)
        NOTIFICATIONS_SMS_MAX_LENGTH: SMS body bound (default: 1600)
        NOTIFICATIONS_PUSH_TITLE_MAX_LENGTH: Push title bound (default: 65)
        NOTIFICATIONS_PUSH_BODY_MAX_LENGTH: Push body bound (default: 240)
        NOTIFICATIONS_EMAIL_SUBJECT_MAX_LENGTH: Email subject bound (default: 998)
        NOTIFICATIONS_WORKER_COUNT: Dispatch worker threads (default: 4)
        NOTIFICATIONS_WORKER_BATCH_SIZE: Notifications claimed per poll (default: 20)
        NOTIFICATIONS_POLL_INTERVAL_SECONDS: Dispatch queue poll interval
        NOTIFICATIONS_SCHEDULER_INTERVAL_SECONDS: Scheduler tick interval
        NOTIFICATIONS_SCHEDULE_LATE_THRESHOLD_SECONDS: Lateness logged as a late fire
        NOTIFICATIONS_CALLBACK_SECRETS: JSON map of provider name to callback secret
        NOTIFICATIONS_WEBHOOK_SIGNING_SECRET: Secret used to sign outbound webhooks
        NOTIFICATIONS_DEFAULT_PAGE_SIZE: Query API default page size
        NOTIFICATIONS_MAX_PAGE_SIZE: Query API maximum page size

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()
        timeout = settings.notifications.adapter_timeout_seconds
        ```
    """

    global_enabled: bool = Field(
        default=True,
        alias="NOTIFICATIONS_GLOBAL_ENABLED",
        description="Initial state of the global notification kill-switch",
    )
    default_timezone: str = Field(
        default="UTC",
        alias="NOTIFICATIONS_DEFAULT_TIMEZONE",
        description="IANA timezone applied when a user preference has none",
    )
    adapter_timeout_seconds: float = Field(
        default=10.0,
        alias="NOTIFICATIONS_ADAPTER_TIMEOUT_SECONDS",
        description="Timeout for a single provider call; timeouts are transient",
    )
    sms_max_length: int = Field(default=1600, alias="NOTIFICATIONS_SMS_MAX_LENGTH")
    push_title_max_length: int = Field(
        default=65, alias="NOTIFICATIONS_PUSH_TITLE_MAX_LENGTH"
    )
    push_body_max_length: int = Field(
        default=240, alias="NOTIFICATIONS_PUSH_BODY_MAX_LENGTH"
    )
    email_subject_max_length: int = Field(
        default=998, alias="NOTIFICATIONS_EMAIL_SUBJECT_MAX_LENGTH"
    )
    worker_count: int = Field(
        default=4,
        alias="NOTIFICATIONS_WORKER_COUNT",
        description="Number of concurrent dispatch workers",
    )
    worker_batch_size: int = Field(
        default=20,
        alias="NOTIFICATIONS_WORKER_BATCH_SIZE",
        description="Maximum queued notifications pulled per poll",
    )
    poll_interval_seconds: int = Field(
        default=1, alias="NOTIFICATIONS_POLL_INTERVAL_SECONDS"
    )
    scheduler_interval_seconds: int = Field(
        default=5, alias="NOTIFICATIONS_SCHEDULER_INTERVAL_SECONDS"
    )
    schedule_late_threshold_seconds: int = Field(
        default=60, alias="NOTIFICATIONS_SCHEDULE_LATE_THRESHOLD_SECONDS"
    )
    circuit_breaker_failure_threshold: int = Field(
        default=5, alias="NOTIFICATIONS_CIRCUIT_BREAKER_FAILURE_THRESHOLD"
    )
    circuit_breaker_timeout_seconds: int = Field(
        default=60, alias="NOTIFICATIONS_CIRCUIT_BREAKER_TIMEOUT_SECONDS"
    )
    callback_secrets: Dict[str, str] = Field(
        default_factory=dict,
        alias="NOTIFICATIONS_CALLBACK_SECRETS",
        description="Provider name to shared secret used to verify callbacks",
    )
    webhook_signing_secret: str = Field(
        default="", alias="NOTIFICATIONS_WEBHOOK_SIGNING_SECRET"
    )
    default_page_size: int = Field(default=20, alias="NOTIFICATIONS_DEFAULT_PAGE_SIZE")
    max_page_size: int = Field(default=100, alias="NOTIFICATIONS_MAX_PAGE_SIZE")

    @field_validator("callback_secrets", mode="before")
    @classmethod
    def validate_callback_secrets(cls, v):
        """Treat an unset or malformed mapping as empty."""
        if v is None or not isinstance(v, dict):
            return {}
        return v
