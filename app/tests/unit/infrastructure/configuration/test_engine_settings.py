"""Unit tests for the settings aggregator and its sections."""

import pytest
from pydantic import ValidationError

from infrastructure.configuration import (
    NotificationSettings,
    ProviderSettings,
    RetrySettings,
    Settings,
)


@pytest.mark.unit
class TestSettingsStructure:
    def test_sections_are_instantiated(self):
        """Test every section is built when not passed explicitly."""
        settings = Settings()

        assert isinstance(settings.providers, ProviderSettings)
        assert isinstance(settings.notifications, NotificationSettings)
        assert isinstance(settings.retry, RetrySettings)

    def test_explicit_section_is_kept(self):
        retry = RetrySettings(RETRY_ENABLED=False)

        assert Settings(retry=retry).retry.enabled is False

    def test_is_production(self, monkeypatch):
        """Test an empty PREFIX means production."""
        monkeypatch.setenv("PREFIX", "dev-")

        assert Settings().is_production is False


@pytest.mark.unit
class TestProviderSettings:
    def test_defaults(self):
        providers = ProviderSettings()

        assert providers.EMAIL_PROVIDER == "sendgrid"
        assert providers.EMAIL_FALLBACK_PROVIDER == "ses"
        assert providers.SMS_PROVIDER == "twilio"
        assert providers.PUSH_FALLBACK_PROVIDER is None

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("SMS_PROVIDER", "gupshup")
        monkeypatch.setenv("SMS_API_URL", "https://sms.example/api")

        providers = ProviderSettings()

        assert providers.SMS_PROVIDER == "gupshup"
        assert providers.SMS_API_URL == "https://sms.example/api"


@pytest.mark.unit
class TestRetrySettings:
    def test_default_schedule(self):
        """Test the default backoff is immediate, 1m, 5m, 15m."""
        assert RetrySettings().backoff_schedule == [0, 60, 300, 900]

    def test_comma_separated_string(self):
        assert RetrySettings(RETRY_BACKOFF_SCHEDULE="0, 30,120").backoff_schedule == [0, 30, 120]

    def test_json_from_environment(self, monkeypatch):
        monkeypatch.setenv("RETRY_BACKOFF_SCHEDULE", "[0, 10]")

        assert RetrySettings().backoff_schedule == [0, 10]

    @pytest.mark.parametrize("value", ["", "0,-5"])
    def test_invalid_schedule(self, value):
        """Test empty or negative schedules are rejected."""
        with pytest.raises(ValidationError):
            RetrySettings(RETRY_BACKOFF_SCHEDULE=value)


@pytest.mark.unit
class TestNotificationSettings:
    def test_defaults(self):
        settings = NotificationSettings()

        assert settings.adapter_timeout_seconds == 10.0
        assert settings.sms_max_length == 1600
        assert settings.callback_secrets == {}

    def test_callback_secrets_from_json(self, monkeypatch):
        monkeypatch.setenv("NOTIFICATIONS_CALLBACK_SECRETS", '{"sendgrid": "s3cret"}')

        assert NotificationSettings().callback_secrets == {"sendgrid": "s3cret"}

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("NOTIFICATIONS_WORKER_COUNT", "8")

        assert NotificationSettings().worker_count == 8
