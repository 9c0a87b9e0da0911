"""Audit records for administrative writes and notification lifecycle changes.

Records are flat so every field can be filtered on directly in the log
store. Operation specific details are stringified under ``audit_meta_``
keys instead of being nested.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

AuditResult = Literal["success", "failure"]

META_PREFIX = "audit_meta_"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuditEvent(BaseModel):
    """One audited action.

    ``tenant_id`` is empty for platform-wide actions such as the global
    kill-switch. ``provider`` is set when a delivery provider was involved
    (status callbacks, delivery failures).
    """

    model_config = ConfigDict(extra="allow")

    correlation_id: str
    action: str = Field(..., description="snake_case action, e.g. toggles_updated")
    resource_type: str
    resource_id: str
    actor: str = Field(..., description="Caller user id, or 'system'")
    result: AuditResult
    tenant_id: str = ""
    timestamp: str = Field(default_factory=_utc_now_iso)
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    provider: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Flat payload for log shipping and export."""
        return self.model_dump(exclude_none=True)


def create_audit_event(
    correlation_id: str,
    action: str,
    resource_type: str,
    resource_id: str,
    actor: str,
    result: str,
    tenant_id: str = "",
    error_type: Optional[str] = None,
    error_message: Optional[str] = None,
    provider: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditEvent:
    """Build an AuditEvent, flattening ``metadata`` into ``audit_meta_*`` strings.

    Raises:
        ValueError: ``result`` is neither ``success`` nor ``failure``
            (pydantic's ValidationError is a ValueError).
    """
    flattened = {
        f"{META_PREFIX}{key}": None if value is None else str(value)
        for key, value in (metadata or {}).items()
    }
    return AuditEvent(
        correlation_id=correlation_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        tenant_id=tenant_id,
        actor=actor,
        result=result,
        error_type=error_type,
        error_message=error_message,
        provider=provider,
        **flattened,
    )
