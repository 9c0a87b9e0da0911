"""Register infrastructure event handlers at startup.

Audit and logging handlers subscribe to every event via the wildcard
event type.
"""

from infrastructure.audit import AuditLog
from infrastructure.events.dispatcher import WILDCARD, register_event_handler
from infrastructure.events.handlers import AuditHandler, LoggingHandler
from infrastructure.logging import get_module_logger

logger = get_module_logger()


def register_infrastructure_handlers(audit_log: AuditLog) -> None:
    """Register audit and logging handlers for all event types.

    Call once at application startup before any events are dispatched.

    Args:
        audit_log: Sink that receives one AuditEvent per auditable event.
    """
    register_event_handler(WILDCARD)(AuditHandler(audit_log).handle)
    register_event_handler(WILDCARD)(LoggingHandler().handle)
    logger.info("infrastructure_handlers_registered", handlers=["audit", "logging"])
