"""Request-scoped logging context.

The HTTP middleware binds a correlation id (plus path and method) for the
lifetime of a request; route handlers add the tenant and caller once auth
has resolved them. Every log line and every published event made while
the request is in flight carries the same correlation id.
"""

import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog

CORRELATION_KEY = "correlation_id"


@contextmanager
def bind_request_context(
    correlation_id: Optional[str] = None,
    user_id: Optional[str] = None,
    tenant_id: Optional[str] = None,
    request_path: Optional[str] = None,
    request_method: Optional[str] = None,
    **extra_context: Any,
) -> Iterator[str]:
    """Bind the given fields for the duration of the block.

    Fields left as None are not bound. A correlation id is generated when
    the caller did not send one. Yields the correlation id in effect.
    """
    optional = {
        "user_id": user_id,
        "tenant_id": tenant_id,
        "request_path": request_path,
        "request_method": request_method,
    }
    context = {key: value for key, value in optional.items() if value is not None}
    context.update(extra_context)
    context[CORRELATION_KEY] = correlation_id or str(uuid.uuid4())

    structlog.contextvars.bind_contextvars(**context)
    try:
        yield context[CORRELATION_KEY]
    finally:
        structlog.contextvars.unbind_contextvars(*context)


def get_correlation_id() -> Optional[str]:
    return structlog.contextvars.get_contextvars().get(CORRELATION_KEY)


def clear_request_context() -> None:
    """Unbind everything bound on the current context."""
    structlog.contextvars.clear_contextvars()
