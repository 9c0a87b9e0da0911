"""Audit log sinks.

The engine only emits audit events; storage is a collaborator behind the
AuditLog protocol. The in-memory sink backs toggle history in single
instance deployments and tests.
"""

import threading
from typing import List, Optional, Protocol

from infrastructure.audit.models import AuditEvent
from infrastructure.logging import get_module_logger

logger = get_module_logger()


class AuditLog(Protocol):
    """Append-only audit sink."""

    def append(self, event: AuditEvent) -> None:
        """Append one audit event."""
        ...

    def query(
        self,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        """Return the most recent events, newest first."""
        ...


class InMemoryAuditLog:
    """Thread-safe in-process audit log that also writes each entry to logs."""

    def __init__(self) -> None:
        self._events: List[AuditEvent] = []
        self._lock = threading.Lock()

    def append(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)
        logger.info("audit_event_recorded", **event.to_payload())

    def query(
        self,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditEvent]:
        with self._lock:
            events = list(self._events)
        matching = [
            event
            for event in reversed(events)
            if (resource_type is None or event.resource_type == resource_type)
            and (resource_id is None or event.resource_id == resource_id)
        ]
        return matching[:limit]
