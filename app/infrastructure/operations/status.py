"""Operation status enumeration.

Status codes for provider and store operations, used to decide whether a
failed delivery is retried, failed over, or surfaced as terminal.
"""

from enum import Enum


class OperationStatus(Enum):
    """Status codes for operation results.

    Attributes:
        SUCCESS: Operation completed successfully
        TRANSIENT_ERROR: Retryable error (network, timeout, provider 5xx, rate limit)
        PERMANENT_ERROR: Non-retryable error (invalid address, rejected content)
        UNAUTHORIZED: Provider credentials rejected
        NOT_FOUND: Resource not found
    """

    SUCCESS = "success"
    TRANSIENT_ERROR = "transient_error"
    PERMANENT_ERROR = "permanent_error"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
