"""In-process event dispatcher.

Handlers register per event type with a decorator and run synchronously on
the publisher's thread. Handlers registered for ``"*"`` receive every event
after the type-specific ones. A failing handler is logged and skipped, so
a subscriber can never fail a send or a status transition.
"""

from threading import Lock
from typing import Any, Callable, Dict, List

from infrastructure.events.models import Event
from infrastructure.logging import get_module_logger

logger = get_module_logger()

WILDCARD = "*"

EventHandler = Callable[[Event], Any]

EVENT_HANDLERS: Dict[str, List[EventHandler]] = {}
_handlers_lock = Lock()


def register_event_handler(event_type: str):
    """Decorator registering a handler for ``event_type`` (or ``"*"``)."""

    def decorator(handler_func: EventHandler) -> EventHandler:
        with _handlers_lock:
            EVENT_HANDLERS.setdefault(event_type, []).append(handler_func)
        logger.debug(
            "registered_event_handler",
            handler=getattr(handler_func, "__name__", repr(handler_func)),
            event_type=event_type,
        )
        return handler_func

    return decorator


def get_handlers_for_event(event_type: str) -> List[EventHandler]:
    """Handlers that will run for ``event_type``, wildcard handlers last."""
    with _handlers_lock:
        handlers = list(EVENT_HANDLERS.get(event_type, []))
        if event_type != WILDCARD:
            handlers.extend(EVENT_HANDLERS.get(WILDCARD, []))
    return handlers


def dispatch_event(event: Event) -> List[Any]:
    """Run every matching handler and return their results.

    Results of handlers that raised are omitted.
    """
    results = []
    for handler in get_handlers_for_event(event.event_type):
        try:
            results.append(handler(event))
        except Exception as e:  # pylint: disable=broad-except
            logger.error(
                "event_handler_failed",
                handler=getattr(handler, "__name__", repr(handler)),
                event_type=event.event_type,
                tenant_id=event.tenant_id,
                correlation_id=event.correlation_id,
                error=str(e),
            )
    return results


def clear_handlers() -> None:
    """Drop every registered handler. Used by tests."""
    with _handlers_lock:
        EVENT_HANDLERS.clear()
