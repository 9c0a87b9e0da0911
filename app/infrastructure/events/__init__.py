"""Infrastructure event system - centralized event dispatcher.

Lightweight in-process dispatcher for notification state changes and
administrative actions.

Usage:

    from infrastructure.events import Event, register_event_handler, dispatch_event

    @register_event_handler("notification.status_changed")
    def on_status_changed(event: Event) -> None:
        ...

    dispatch_event(
        Event(
            event_type="notification.status_changed",
            tenant_id="tenant-1",
            metadata={"notification_id": "n-1", "to_status": "sent"},
        )
    )
"""

from infrastructure.events.bootstrap import register_infrastructure_handlers
from infrastructure.events.dispatcher import (
    clear_handlers,
    dispatch_event,
    get_handlers_for_event,
    register_event_handler,
)
from infrastructure.events.models import Event

__all__ = [
    "Event",
    "clear_handlers",
    "dispatch_event",
    "register_event_handler",
    "get_handlers_for_event",
    "register_infrastructure_handlers",
]
