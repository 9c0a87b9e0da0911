"""Retry system infrastructure settings."""

from typing import List

from pydantic import Field, field_validator

from infrastructure.configuration.base import InfrastructureSettings


class RetrySettings(InfrastructureSettings):
    """Delivery retry configuration.

    The backoff schedule lists the delay before each attempt, the first
    entry being the initial attempt. Its length is the total number of
    automatic attempts; after the last one fails the notification is
    terminal ``failed``.

    Environment Variables:
        RETRY_ENABLED: Retry transient failures automatically (default: True)
        RETRY_BACKOFF_SCHEDULE: JSON list of delays in
            seconds (default: 0,60,300,900)

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()
        max_attempts = len(settings.retry.backoff_schedule)
        ```
    """

    enabled: bool = Field(
        default=True,
        alias="RETRY_ENABLED",
        description="Retry transient delivery failures automatically",
    )
    backoff_schedule: List[int] = Field(
        default_factory=lambda: [0, 60, 300, 900],
        alias="RETRY_BACKOFF_SCHEDULE",
        description="Delay in seconds before each attempt, first entry is the initial send",
    )

    @field_validator("backoff_schedule", mode="before")
    @classmethod
    def parse_backoff_schedule(cls, v):
        """Accept "0,60,300" strings as well as lists."""
        if isinstance(v, str):
            return [int(part.strip()) for part in v.split(",") if part.strip()]
        return v

    @field_validator("backoff_schedule")
    @classmethod
    def validate_backoff_schedule(cls, v: List[int]) -> List[int]:
        """Require at least one non-negative delay."""
        if not v:
            raise ValueError("backoff_schedule must contain at least one delay")
        if any(delay < 0 for delay in v):
            raise ValueError("backoff_schedule delays must be >= 0")
        return v
