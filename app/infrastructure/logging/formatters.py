"""Structlog processors that keep log entries safe and bounded.

Notification logs carry recipients, rendered bodies and provider
credentials. These processors tag entries with the running version, strip
secrets, mask recipient addresses and cap long values.

Usage:
    from infrastructure.logging.formatters import mask_sensitive_data
"""

from typing import Any, Mapping

# Key fragments whose values are replaced outright
SENSITIVE_PATTERNS = frozenset(
    {
        "password",
        "secret",
        "token",
        "api_key",
        "apikey",
        "authorization",
        "signature",
        "credential",
        "private_key",
        "jwt",
        "bearer",
    }
)

# Keys whose values are recipient addresses; partially masked
CONTACT_PATTERNS = frozenset({"phone", "phone_number", "address", "email", "to"})

_KEEP_TAIL = 4
_MAX_DEPTH = 4


def add_app_info(app_name: str, app_version: str = "unknown"):
    """Processor adding ``app_name`` and ``app_version`` to every entry."""

    def processor(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("app_name", app_name)
        event_dict.setdefault("app_version", app_version)
        return event_dict

    return processor


def mask_contact(value: str) -> str:
    """Mask a phone number, token or email address.

    Phone numbers and tokens keep their last four characters. Email
    addresses keep the first character of the local part and the domain.

    Example:
        >>> mask_contact("+14165550100")
        '********0100'
        >>> mask_contact("asha@example.com")
        'a***@example.com'
    """
    local, at, domain = value.partition("@")
    if at and local and domain:
        return f"{local[0]}***@{domain}"
    if len(value) <= _KEEP_TAIL:
        return "*" * len(value)
    return "*" * (len(value) - _KEEP_TAIL) + value[-_KEEP_TAIL:]


def mask_sensitive_data(
    mask_value: str = "***REDACTED***",
    additional_patterns: frozenset[str] | None = None,
):
    """Processor masking secrets and recipient addresses.

    Nested mappings (a logged recipient or provider message) are walked a
    few levels deep with the same rules as top-level keys.

    Args:
        mask_value: Replacement for secret values.
        additional_patterns: Extra key fragments to treat as secret.
    """
    patterns = SENSITIVE_PATTERNS | (additional_patterns or frozenset())

    def _mask(mapping: Mapping[str, Any], depth: int) -> dict[str, Any]:
        masked: dict[str, Any] = {}
        for key, value in mapping.items():
            key_lower = str(key).lower()
            if value is None:
                masked[key] = value
            elif any(pattern in key_lower for pattern in patterns):
                masked[key] = mask_value
            elif key_lower in CONTACT_PATTERNS and isinstance(value, str):
                masked[key] = mask_contact(value)
            elif isinstance(value, Mapping) and depth < _MAX_DEPTH:
                masked[key] = _mask(value, depth + 1)
            else:
                masked[key] = value
        return masked

    def processor(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        return _mask(event_dict, 0)

    return processor


def truncate_large_values(max_length: int = 500):
    """Processor capping string values at ``max_length`` characters.

    Rendered email bodies would otherwise dominate the log volume.
    """

    def processor(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        for key, value in event_dict.items():
            if isinstance(value, str) and len(value) > max_length:
                event_dict[key] = f"{value[:max_length]}...[truncated, {len(value)} chars total]"
        return event_dict

    return processor
