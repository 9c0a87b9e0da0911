"""Audit handler for event system.

Converts events into flat AuditEvent records and appends them to the
configured audit log.
"""

from typing import Dict, Optional, Tuple

from infrastructure.audit import AuditLog, create_audit_event
from infrastructure.events.models import Event
from infrastructure.logging import get_module_logger

logger = get_module_logger()


# Event family -> (audit resource type, metadata key holding its id)
_RESOURCES: Dict[str, Tuple[str, str]] = {
    "notification": ("notification", "notification_id"),
    "template": ("notification_template", "template_id"),
    "schedule": ("notification_schedule", "schedule_id"),
    "campaign": ("notification_campaign", "campaign_id"),
}


def _extract_resource_info(event: Event) -> Tuple[Optional[str], Optional[str]]:
    if event.resource_family in _RESOURCES:
        resource_type, id_key = _RESOURCES[event.resource_family]
        return resource_type, event.metadata.get(id_key)
    return event.metadata.get("resource_type"), event.metadata.get("resource_id")


class AuditHandler:
    """Writes every received event to an AuditLog."""

    def __init__(self, audit_log: AuditLog):
        self.audit_log = audit_log

    def handle(self, event: Event) -> None:
        """Convert the event to an AuditEvent and append it.

        Events without a resolvable resource are skipped.

        Args:
            event: The event to audit.
        """
        resource_type, resource_id = _extract_resource_info(event)
        if not resource_type or not resource_id:
            logger.debug(
                "audit_event_skipped_no_resource",
                event_type=event.event_type,
            )
            return

        metadata = {
            key: value
            for key, value in event.metadata.items()
            if key not in ("error_message", "error_type", "provider")
        }
        audit_event = create_audit_event(
            correlation_id=event.correlation_id,
            action=event.event_type.replace(".", "_"),
            resource_type=resource_type,
            resource_id=str(resource_id),
            tenant_id=event.tenant_id,
            actor=event.actor,
            result="failure" if event.metadata.get("error_message") else "success",
            error_type=event.metadata.get("error_type"),
            error_message=event.metadata.get("error_message"),
            provider=event.metadata.get("provider"),
            metadata=metadata,
        )
        self.audit_log.append(audit_event)
