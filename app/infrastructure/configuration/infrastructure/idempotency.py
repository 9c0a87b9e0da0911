"""Idempotency infrastructure settings."""

from pydantic import Field

from infrastructure.configuration.base import InfrastructureSettings


class IdempotencySettings(InfrastructureSettings):
    """Idempotency cache configuration for Send API requests.

    A Send API call carrying an idempotency key returns the first response
    for that key until the entry expires.

    Environment Variables:
        IDEMPOTENCY_ENABLED: Honour idempotency keys on the Send API (default: True)
        IDEMPOTENCY_TTL_SECONDS: Time-to-live for cache entries (default: 3600s = 1h)

    Example:
        ```python
        from infrastructure.services import get_settings

        ttl = get_settings().idempotency.IDEMPOTENCY_TTL_SECONDS
        ```
    """

    IDEMPOTENCY_ENABLED: bool = Field(default=True, alias="IDEMPOTENCY_ENABLED")
    IDEMPOTENCY_TTL_SECONDS: int = Field(default=3600, alias="IDEMPOTENCY_TTL_SECONDS")
