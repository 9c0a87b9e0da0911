"""Audit events and sinks."""

from infrastructure.audit.log import AuditLog, InMemoryAuditLog
from infrastructure.audit.models import AuditEvent, create_audit_event

__all__ = ["AuditEvent", "AuditLog", "InMemoryAuditLog", "create_audit_event"]
