"""Logging handler for event system.

Writes events to structured logs.
"""

from infrastructure.events.models import Event
from infrastructure.logging import get_module_logger

logger = get_module_logger()


class LoggingHandler:
    """Handles structured logging for events."""

    def __init__(self):
        self.log = logger.bind(component="event_logging_handler")

    def handle(self, event: Event) -> None:
        """Log the event with its metadata.

        Args:
            event: The event to log.
        """
        self.log.info(
            "event_occurred",
            event_type=event.event_type,
            correlation_id=event.correlation_id,
            tenant_id=event.tenant_id,
            actor=event.actor,
            metadata=event.metadata,
            timestamp=event.timestamp.isoformat(),
        )
