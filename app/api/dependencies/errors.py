"""Translate engine exceptions into HTTP errors."""

from contextlib import contextmanager
from typing import Iterator

import pydantic
from fastapi import HTTPException
from fastapi.encoders import jsonable_encoder

from infrastructure.notifications.errors import (
    NotFoundError,
    NotificationError,
    PermissionDeniedError,
    QuotaExceeded,
    SignatureVerificationError,
    TemplateRenderError,
    ValidationError,
)


def to_http_exception(exc: Exception) -> HTTPException:
    """Map an engine exception onto the status code clients expect."""
    if isinstance(exc, QuotaExceeded):
        return HTTPException(
            status_code=429,
            detail={
                "reason": exc.reason,
                "message": str(exc),
                "channel": exc.channel,
                "window": exc.window,
            },
        )
    if isinstance(exc, TemplateRenderError):
        return HTTPException(
            status_code=422,
            detail={
                "reason": "template_error",
                "message": str(exc),
                "variable": exc.variable,
            },
        )
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, pydantic.ValidationError):
        return HTTPException(
            status_code=422,
            detail=jsonable_encoder(
                exc.errors(include_url=False, include_context=False, include_input=False)
            ),
        )
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, SignatureVerificationError):
        return HTTPException(status_code=401, detail=str(exc))
    return HTTPException(status_code=500, detail="Internal error")


@contextmanager
def engine_errors() -> Iterator[None]:
    """Re-raise engine exceptions as HTTPException.

    Usage:
        with engine_errors():
            return service.send(request)
    """
    try:
        yield
    except (NotificationError, pydantic.ValidationError) as e:
        raise to_http_exception(e) from e
