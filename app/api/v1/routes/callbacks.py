from typing import Annotated, Optional

from fastapi import APIRouter, Header, Request
from starlette.concurrency import run_in_threadpool

from api.dependencies.errors import engine_errors
from api.dependencies.rate_limits import callback_key_func, get_limiter
from infrastructure.notifications import Channel
from infrastructure.services import NotificationServiceDep

router = APIRouter(prefix="/callbacks", tags=["Callbacks"])
limiter = get_limiter()


@router.post("/{channel}/{provider}")
@limiter.limit("300/minute", key_func=callback_key_func)
async def provider_callback(
    channel: Channel,
    provider: str,
    request: Request,
    service: NotificationServiceDep,
    x_signature: Annotated[Optional[str], Header()] = None,
):
    """Receive a delivery status callback from a provider.

    The raw body is verified against ``X-Signature`` (HMAC-SHA256 with the
    provider's shared secret) before it is parsed. Callbacks for unknown
    notifications are acknowledged and ignored.

    Raises:
        HTTPException: 401 on a bad signature, 404 for an unknown provider,
            422 for a body that is not JSON
    """
    body = await request.body()
    with engine_errors():
        summary = await run_in_threadpool(
            service.handle_callback, channel, provider, body, x_signature
        )
    return {
        "processed": summary.processed,
        "ignored": summary.ignored,
        "not_found": summary.not_found,
    }
