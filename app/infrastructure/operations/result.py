"""Provider call outcome.

Provider clients never raise for an expected failure. They return an
``OperationResult`` and the channel adapter turns it into a ``SendResult``,
so transient versus permanent is decided once, in the classifiers.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from infrastructure.operations.status import OperationStatus


@dataclass
class OperationResult:
    """Outcome of one call to a delivery provider.

    Attributes:
        status: High-level outcome
        message: Human-friendly text for logs
        data: Payload on success, typically ``{"message_id": ...}``
        error_code: Machine code such as ``RATE_LIMITED`` or ``TIMEOUT``
        retry_after: Seconds the provider asked us to wait
    """

    status: OperationStatus
    message: str
    data: Optional[Any] = None
    error_code: Optional[str] = None
    retry_after: Optional[int] = None

    @property
    def is_success(self) -> bool:
        return self.status is OperationStatus.SUCCESS

    @property
    def is_transient(self) -> bool:
        """Another attempt later may succeed."""
        return self.status is OperationStatus.TRANSIENT_ERROR

    def log_fields(self) -> Dict[str, Any]:
        """Structured fields for a log call, without the payload."""
        fields: Dict[str, Any] = {"status": self.status.value, "detail": self.message}
        if self.error_code:
            fields["error_code"] = self.error_code
        if self.retry_after is not None:
            fields["retry_after"] = self.retry_after
        return fields

    @classmethod
    def success(cls, data: Optional[Any] = None, message: str = "ok") -> "OperationResult":
        return cls(OperationStatus.SUCCESS, message, data=data)

    @classmethod
    def failure(
        cls,
        status: OperationStatus,
        message: str,
        error_code: Optional[str] = None,
        retry_after: Optional[int] = None,
    ) -> "OperationResult":
        """Failure with an explicit status (unauthorized, not found)."""
        return cls(status, message, error_code=error_code, retry_after=retry_after)

    @classmethod
    def transient_error(
        cls,
        message: str,
        error_code: Optional[str] = None,
        retry_after: Optional[int] = None,
    ) -> "OperationResult":
        """Provider outage, timeout, 5xx or rate limit."""
        return cls.failure(
            OperationStatus.TRANSIENT_ERROR, message, error_code, retry_after
        )

    @classmethod
    def permanent_error(
        cls, message: str, error_code: Optional[str] = None
    ) -> "OperationResult":
        """Invalid address, rejected content or anything else a retry cannot fix."""
        return cls.failure(OperationStatus.PERMANENT_ERROR, message, error_code)
