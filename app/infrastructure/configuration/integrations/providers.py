"""Delivery provider integration settings."""

from pydantic import Field

from infrastructure.configuration.base import IntegrationSettings


class ProviderSettings(IntegrationSettings):
    """Per-channel provider selection, endpoints and sender identity.

    Each channel has a primary and an optional fallback provider. A provider
    with an API URL is called over HTTP; one without is replaced by the
    logging provider, which accepts every message (development only).

    Environment Variables:
        EMAIL_PROVIDER / EMAIL_FALLBACK_PROVIDER: e.g. sendgrid, ses, smtp
        EMAIL_API_URL / EMAIL_API_KEY: primary email endpoint and key
        EMAIL_FALLBACK_API_URL / EMAIL_FALLBACK_API_KEY: fallback endpoint and key
        EMAIL_FROM_ADDRESS / EMAIL_FROM_NAME / EMAIL_REPLY_TO: default sender
        SMS_PROVIDER / SMS_FALLBACK_PROVIDER: e.g. twilio, gupshup
        SMS_API_URL / SMS_API_KEY / SMS_FALLBACK_API_URL / SMS_FALLBACK_API_KEY
        SMS_SENDER_ID: default SMS sender id
        PUSH_PROVIDER / PUSH_FALLBACK_PROVIDER: e.g. fcm, apns
        PUSH_API_URL / PUSH_API_KEY / PUSH_FALLBACK_API_URL / PUSH_FALLBACK_API_KEY

    Example:
        ```python
        from infrastructure.services import get_settings

        providers = get_settings().providers
        primary = providers.EMAIL_PROVIDER
        ```
    """

    EMAIL_PROVIDER: str = Field(default="sendgrid", alias="EMAIL_PROVIDER")
    EMAIL_FALLBACK_PROVIDER: str | None = Field(
        default="ses", alias="EMAIL_FALLBACK_PROVIDER"
    )
    EMAIL_API_URL: str = Field(default="", alias="EMAIL_API_URL")
    EMAIL_API_KEY: str | None = Field(default=None, alias="EMAIL_API_KEY")
    EMAIL_FALLBACK_API_URL: str = Field(default="", alias="EMAIL_FALLBACK_API_URL")
    EMAIL_FALLBACK_API_KEY: str | None = Field(
        default=None, alias="EMAIL_FALLBACK_API_KEY"
    )
    EMAIL_FROM_ADDRESS: str = Field(
        default="noreply@example.com", alias="EMAIL_FROM_ADDRESS"
    )
    EMAIL_FROM_NAME: str = Field(default="Notifications", alias="EMAIL_FROM_NAME")
    EMAIL_REPLY_TO: str | None = Field(default=None, alias="EMAIL_REPLY_TO")

    SMS_PROVIDER: str = Field(default="twilio", alias="SMS_PROVIDER")
    SMS_FALLBACK_PROVIDER: str | None = Field(
        default="gupshup", alias="SMS_FALLBACK_PROVIDER"
    )
    SMS_API_URL: str = Field(default="", alias="SMS_API_URL")
    SMS_API_KEY: str | None = Field(default=None, alias="SMS_API_KEY")
    SMS_FALLBACK_API_URL: str = Field(default="", alias="SMS_FALLBACK_API_URL")
    SMS_FALLBACK_API_KEY: str | None = Field(
        default=None, alias="SMS_FALLBACK_API_KEY"
    )
    SMS_SENDER_ID: str = Field(default="NOTIFY", alias="SMS_SENDER_ID")

    PUSH_PROVIDER: str = Field(default="fcm", alias="PUSH_PROVIDER")
    PUSH_FALLBACK_PROVIDER: str | None = Field(
        default=None, alias="PUSH_FALLBACK_PROVIDER"
    )
    PUSH_API_URL: str = Field(default="", alias="PUSH_API_URL")
    PUSH_API_KEY: str | None = Field(default=None, alias="PUSH_API_KEY")
    PUSH_FALLBACK_API_URL: str = Field(default="", alias="PUSH_FALLBACK_API_URL")
    PUSH_FALLBACK_API_KEY: str | None = Field(
        default=None, alias="PUSH_FALLBACK_API_KEY"
    )
