"""Inbox websocket.

Browsers cannot set headers on a websocket handshake, so the bearer JWT is
passed as the ``token`` query parameter. Once connected the client receives
a ``connected`` message with its unread count, then a ``notification``
message for every in-app delivery and an ``unread_count`` message whenever
the count changes.

Client messages:

- ``{"type": "ping"}`` is answered with ``{"type": "pong"}``
- ``{"type": "mark_read", "notification_id": "..."}`` marks one read
"""

import asyncio
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from infrastructure.logging import get_module_logger
from infrastructure.notifications import NotificationError
from infrastructure.security import InvalidTokenError, principal_from_claims, validate_jwt_token
from infrastructure.services import NotificationServiceDep, RealtimeHubDep, SettingsDep

logger = get_module_logger()
router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.websocket("/ws")
async def notifications_websocket(
    websocket: WebSocket,
    settings: SettingsDep,
    service: NotificationServiceDep,
    hub: RealtimeHubDep,
    token: Optional[str] = None,
):
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Not authenticated")
        return
    try:
        claims = validate_jwt_token(
            token, settings.server.SECRET_KEY, settings.server.JWT_ALGORITHM
        )
        principal = principal_from_claims(claims)
    except InvalidTokenError as e:
        logger.warning("realtime_auth_failed", error=str(e))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return

    tenant_id, user_id = principal.tenant_id, principal.user_id
    await websocket.accept()
    hub.connect(tenant_id, user_id, websocket, asyncio.get_running_loop())
    try:
        unread = await run_in_threadpool(service.unread_count, tenant_id, user_id)
        await websocket.send_json(
            {
                "type": "connected",
                "message": "Connected to notification stream",
                "unread_count": unread,
            }
        )
        while True:
            message = await websocket.receive_json()
            kind = message.get("type") if isinstance(message, dict) else None
            if kind == "ping":
                await websocket.send_json({"type": "pong"})
            elif kind == "mark_read" and message.get("notification_id"):
                try:
                    await run_in_threadpool(
                        service.mark_read, tenant_id, user_id, message["notification_id"]
                    )
                except NotificationError as e:
                    await websocket.send_json({"type": "error", "message": str(e)})
            else:
                logger.debug("realtime_message_ignored", message_type=kind)
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(tenant_id, user_id, websocket)

