"""Error classifiers for provider exceptions.

Converts HTTP client exceptions and status codes raised while talking to
delivery providers into standardized OperationResult objects, so channel
adapters agree on what is transient and what is permanent.

Usage:
    from infrastructure.operations.classifiers import classify_http_error

    try:
        response = client.post(url, json=body)
        response.raise_for_status()
    except Exception as exc:
        return classify_http_error(exc, provider="twilio")
"""

from typing import Optional

import httpx

from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

DEFAULT_RETRY_AFTER_SECONDS = 60


def _parse_retry_after(value: Optional[str]) -> int:
    if not value:
        return DEFAULT_RETRY_AFTER_SECONDS
    try:
        return int(value)
    except (ValueError, TypeError):
        return DEFAULT_RETRY_AFTER_SECONDS


def classify_http_status(
    status_code: int,
    provider: str = "provider",
    retry_after: Optional[str] = None,
    body: str = "",
) -> OperationResult:
    """Classify a provider HTTP status code into an OperationResult.

    Status Code Mapping:
    - 2xx: SUCCESS
    - 429: Rate limiting → TRANSIENT_ERROR with retry_after
    - 401/403: Credentials rejected → UNAUTHORIZED
    - 404: NOT_FOUND
    - 408/5xx: TRANSIENT_ERROR
    - Other 4xx: PERMANENT_ERROR (invalid address, rejected content)

    Args:
        status_code: HTTP status code returned by the provider
        provider: Provider name for messages
        retry_after: Raw Retry-After header value, if any
        body: Response body excerpt for diagnostics

    Returns:
        OperationResult with the matching status
    """
    if 200 <= status_code < 300:
        return OperationResult.success(message=f"{provider} accepted request")

    if status_code == 429:
        return OperationResult.failure(
            OperationStatus.TRANSIENT_ERROR,
            f"{provider} rate limited",
            error_code="RATE_LIMITED",
            retry_after=_parse_retry_after(retry_after),
        )

    if status_code in (401, 403):
        return OperationResult.failure(
            OperationStatus.UNAUTHORIZED,
            f"{provider} rejected credentials ({status_code})",
            error_code="UNAUTHORIZED" if status_code == 401 else "FORBIDDEN",
        )

    if status_code == 404:
        return OperationResult.failure(
            OperationStatus.NOT_FOUND,
            f"{provider} endpoint not found",
            error_code="NOT_FOUND",
        )

    if status_code == 408 or 500 <= status_code < 600:
        return OperationResult.transient_error(
            f"{provider} server error ({status_code})",
            error_code="SERVER_ERROR",
        )

    return OperationResult.permanent_error(
        f"{provider} client error ({status_code}): {body[:200]}",
        error_code="HTTP_ERROR",
    )


def classify_http_error(exc: Exception, provider: str = "provider") -> OperationResult:
    """Classify an httpx exception into an OperationResult.

    Timeouts and connection failures are transient. HTTPStatusError is
    classified by its response status code. Anything else is treated as a
    transient connection-class failure.

    Args:
        exc: Exception raised by httpx (or a transport)
        provider: Provider name for messages

    Returns:
        OperationResult with appropriate status, message, error_code, and
        retry_after (if applicable)
    """
    if isinstance(exc, httpx.TimeoutException):
        return OperationResult.transient_error(
            f"{provider} timed out: {exc}",
            error_code="TIMEOUT",
        )

    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        return classify_http_status(
            response.status_code,
            provider=provider,
            retry_after=response.headers.get("retry-after"),
            body=response.text,
        )

    return OperationResult.transient_error(
        f"Connection error: {type(exc).__name__}: {str(exc)}",
        error_code="CONNECTION_ERROR",
    )
