"""Event record published for notification state changes and admin actions."""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict

from infrastructure.logging.context import get_correlation_id


def _current_correlation_id() -> str:
    return get_correlation_id() or str(uuid.uuid4())


@dataclass(frozen=True)
class Event:
    """Something that happened in the engine.

    Events raised while serving an HTTP request carry that request's
    correlation id, so audit records and logs line up with the access log.
    Background work (dispatch, scheduler) gets a fresh id per event.
    """

    event_type: str
    """Dotted type, e.g. ``notification.status_changed`` or ``template.created``."""

    tenant_id: str = ""
    actor: str = "system"
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: str = field(default_factory=_current_correlation_id)

    @property
    def resource_family(self) -> str:
        """Leading segment of the type: ``notification``, ``template``..."""
        return self.event_type.split(".", 1)[0]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data
