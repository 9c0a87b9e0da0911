"""Send API and the in-app notification inbox."""

from typing import Optional

from fastapi import APIRouter, Query, Request

from api.dependencies.auth import AdminDep, PrincipalDep, require_tenant_access
from api.dependencies.errors import engine_errors
from api.dependencies.rate_limits import get_limiter
from infrastructure.logging import get_module_logger
from infrastructure.notifications import Channel, Notification, SendRequest, SendResponse
from infrastructure.notifications.service import NotificationDetail, NotificationPage
from infrastructure.services import NotificationServiceDep

logger = get_module_logger()
router = APIRouter(prefix="/notifications", tags=["Notifications"])
limiter = get_limiter()


@router.post("", response_model=SendResponse, status_code=202)
@limiter.limit("600/minute")
def send_notification(
    request: Request,  # pylint: disable=unused-argument
    payload: SendRequest,
    principal: AdminDep,
    service: NotificationServiceDep,
):
    """Send API.

    Creates one notification per eligible channel and returns a decision
    (``allow``, ``defer`` or ``deny`` with a reason code) for every
    requested channel. Delivery happens asynchronously.

    **Idempotency:**
    - Pass ``idempotency_key`` to make retries safe
    - A repeated key within the TTL returns the first response with
      ``idempotent_replay`` set

    Raises:
        HTTPException: 422 for validation or template errors, 429 with
            reason ``quota_exceeded`` when every channel is over quota
    """
    require_tenant_access(principal, payload.tenant_id)
    with engine_errors():
        return service.send(payload, actor=principal.user_id)


@router.get("", response_model=NotificationPage)
def list_notifications(
    principal: PrincipalDep,
    service: NotificationServiceDep,
    page: int = Query(default=1, ge=1),
    page_size: Optional[int] = Query(default=None, ge=1),
    unread_only: bool = False,
    channel: Optional[Channel] = None,
):
    """List the current user's notifications, newest first."""
    return service.list_notifications(
        principal.tenant_id,
        principal.user_id,
        page=page,
        page_size=page_size,
        unread_only=unread_only,
        channel=channel,
    )


@router.get("/unread-count")
def unread_count(principal: PrincipalDep, service: NotificationServiceDep):
    return {"count": service.unread_count(principal.tenant_id, principal.user_id)}


@router.post("/read-all")
def mark_all_read(principal: PrincipalDep, service: NotificationServiceDep):
    return {"updated": service.mark_all_read(principal.tenant_id, principal.user_id)}


@router.post("/{notification_id}/read", response_model=Notification)
def mark_read(
    notification_id: str, principal: PrincipalDep, service: NotificationServiceDep
):
    with engine_errors():
        return service.mark_read(principal.tenant_id, principal.user_id, notification_id)


@router.delete("/{notification_id}", status_code=204)
def delete_notification(
    notification_id: str, principal: PrincipalDep, service: NotificationServiceDep
):
    """Hide a notification from the user's inbox."""
    with engine_errors():
        service.delete(principal.tenant_id, principal.user_id, notification_id)


@router.post("/{notification_id}/cancel", response_model=Notification)
def cancel_notification(
    notification_id: str, principal: AdminDep, service: NotificationServiceDep
):
    """Cancel a pending or queued notification.

    A notification already being sent is flagged instead, which stops any
    further retry.
    """
    with engine_errors():
        return service.cancel(principal.tenant_id, notification_id, principal.user_id)


@router.post("/{notification_id}/retry", response_model=Notification)
def retry_notification(
    notification_id: str, principal: AdminDep, service: NotificationServiceDep
):
    """Force one more delivery attempt for a failed or bounced notification."""
    with engine_errors():
        notification = service.retry(
            principal.tenant_id, notification_id, principal.user_id
        )
    logger.info(
        "manual_retry_requested",
        notification_id=notification_id,
        actor=principal.user_id,
    )
    return notification


@router.get("/{notification_id}", response_model=NotificationDetail)
def get_notification(
    notification_id: str, principal: AdminDep, service: NotificationServiceDep
):
    """Notification with its full status history and delivery attempts."""
    with engine_errors():
        return service.get_detail(principal.tenant_id, notification_id)
