"""Event handlers for infrastructure event system."""

from infrastructure.events.handlers.audit import AuditHandler
from infrastructure.events.handlers.logging import LoggingHandler

__all__ = ["AuditHandler", "LoggingHandler"]
