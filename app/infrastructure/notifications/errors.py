"""Notification engine exception taxonomy.

All engine exceptions derive from NotificationError. Validation and
template errors are raised synchronously to the caller of the Send API and
are never retried. Provider errors are normally carried as results rather
than raised; the exception forms exist for adapters that prefer raising.

Eligibility denials are not errors: see
``infrastructure.notifications.eligibility.EligibilityDecision``.
"""

from typing import Optional


class NotificationError(Exception):
    """Base class for notification engine errors."""


class ValidationError(NotificationError):
    """Malformed input: bad recipient, unknown type, illegal transition."""


class TemplateRenderError(ValidationError):
    """A template placeholder had no value in the variable map."""

    def __init__(self, variable: str, template_id: Optional[str] = None):
        self.variable = variable
        self.template_id = template_id
        super().__init__(f"missing variable {variable}")


TemplateError = TemplateRenderError


class InvalidTransitionError(ValidationError):
    """Status change not allowed by the notification state machine."""

    def __init__(self, notification_id: str, from_status, to_status):
        self.notification_id = notification_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Notification {notification_id} cannot move from "
            f"{getattr(from_status, 'value', from_status)} to "
            f"{getattr(to_status, 'value', to_status)}"
        )


class QuotaExceeded(NotificationError):
    """Tenant send quota for a channel and window is used up."""

    reason = "quota_exceeded"

    def __init__(self, tenant_id: str, channel: str, window: str):
        self.tenant_id = tenant_id
        self.channel = channel
        self.window = window
        super().__init__(
            f"Tenant {tenant_id} exceeded its {window} quota for {channel}"
        )


class ProviderError(NotificationError):
    """Base for errors reported by a delivery provider."""

    retryable = False

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        error_code: Optional[str] = None,
    ):
        self.provider = provider
        self.error_code = error_code
        super().__init__(message)


class TransientProviderError(ProviderError):
    """Network failure, provider 5xx or timeout. Retried with backoff."""

    retryable = True


class PermanentProviderError(ProviderError):
    """Invalid address or rejected content. Never retried."""


class NotFoundError(NotificationError):
    """Requested resource does not exist for this tenant."""


class PermissionDeniedError(NotificationError):
    """Operation is not allowed on this resource (e.g. system templates)."""


class SignatureVerificationError(NotificationError):
    """Provider callback signature is missing or does not match."""
