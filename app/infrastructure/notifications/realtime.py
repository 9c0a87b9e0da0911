"""Realtime push of in-app notifications to connected users.

The hub keeps one entry per open websocket, keyed by tenant and user. The
engine publishes events from worker threads while websockets live on the
server's event loop, so ``notify`` hands the sends to the connection's own
loop and returns without waiting for them. A connection whose send fails,
or whose loop has closed, is dropped.

Pushed messages:

- ``{"type": "notification", "data": {...}}`` when an in-app notification
  is delivered
- ``{"type": "unread_count", "count": n}`` after a delivery, a read or a
  delete
"""

import asyncio
from threading import Lock
from typing import Any, Dict, List, Optional, Protocol, Tuple, TYPE_CHECKING

from infrastructure.events.dispatcher import register_event_handler
from infrastructure.events.models import Event
from infrastructure.logging import get_module_logger
from infrastructure.notifications.models import Channel, NotificationStatus

if TYPE_CHECKING:
    from infrastructure.notifications.service import NotificationService

logger = get_module_logger()


class RealtimeConnection(Protocol):
    async def send_json(self, data: Any) -> None: ...


_Entry = Tuple[RealtimeConnection, asyncio.AbstractEventLoop]


class RealtimeHub:
    """Thread-safe registry of open realtime connections."""

    def __init__(self) -> None:
        self._connections: Dict[Tuple[str, str], List[_Entry]] = {}
        self._lock = Lock()

    def connect(
        self,
        tenant_id: str,
        user_id: str,
        connection: RealtimeConnection,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        with self._lock:
            self._connections.setdefault((tenant_id, user_id), []).append(
                (connection, loop)
            )
        logger.info("realtime_connected", tenant_id=tenant_id, user_id=user_id)

    def disconnect(
        self, tenant_id: str, user_id: str, connection: RealtimeConnection
    ) -> None:
        key = (tenant_id, user_id)
        with self._lock:
            entries = [e for e in self._connections.get(key, []) if e[0] is not connection]
            if entries:
                self._connections[key] = entries
            else:
                self._connections.pop(key, None)
        logger.info("realtime_disconnected", tenant_id=tenant_id, user_id=user_id)

    def connection_count(
        self, tenant_id: Optional[str] = None, user_id: Optional[str] = None
    ) -> int:
        with self._lock:
            return sum(
                len(entries)
                for (tenant, user), entries in self._connections.items()
                if (tenant_id is None or tenant == tenant_id)
                and (user_id is None or user == user_id)
            )

    def notify(self, tenant_id: str, user_id: str, *messages: Dict[str, Any]) -> int:
        """Queue ``messages`` for every connection of the user, in order.

        Returns:
            int: Number of connections the messages were handed to.
        """
        with self._lock:
            entries = list(self._connections.get((tenant_id, user_id), []))
        sent = 0
        for connection, loop in entries:
            coroutine = self._send_all(tenant_id, user_id, connection, messages)
            try:
                asyncio.run_coroutine_threadsafe(coroutine, loop)
                sent += 1
            except RuntimeError:
                coroutine.close()
                logger.warning("realtime_loop_closed", tenant_id=tenant_id, user_id=user_id)
                self.disconnect(tenant_id, user_id, connection)
        return sent

    async def _send_all(
        self,
        tenant_id: str,
        user_id: str,
        connection: RealtimeConnection,
        messages: Tuple[Dict[str, Any], ...],
    ) -> None:
        try:
            for message in messages:
                await connection.send_json(message)
        except Exception as e:  # pylint: disable=broad-except
            logger.warning(
                "realtime_send_failed",
                tenant_id=tenant_id,
                user_id=user_id,
                error=str(e),
            )
            self.disconnect(tenant_id, user_id, connection)


def unread_count_message(count: int) -> Dict[str, Any]:
    return {"type": "unread_count", "count": count}


class RealtimeHandler:
    """Turns inbox events into pushes for the affected user."""

    def __init__(self, service: "NotificationService", hub: RealtimeHub):
        self.service = service
        self.hub = hub

    def handle(self, event: Event) -> None:
        user_id = event.metadata.get("user_id")
        if not user_id or not self.hub.connection_count(event.tenant_id, user_id):
            return

        messages = []
        if event.event_type == "notification.status_changed":
            if (
                event.metadata.get("channel") != Channel.IN_APP.value
                or event.metadata.get("to_status") != NotificationStatus.DELIVERED.value
            ):
                return
            notification = self.service.store.get(event.metadata["notification_id"])
            if notification is None:
                return
            messages.append(
                {"type": "notification", "data": notification.model_dump(mode="json")}
            )

        messages.append(
            unread_count_message(self.service.unread_count(event.tenant_id, user_id))
        )
        self.hub.notify(event.tenant_id, user_id, *messages)


REALTIME_EVENTS = (
    "notification.status_changed",
    "notification.read",
    "notification.deleted",
)


def register_realtime_handler(service: "NotificationService", hub: RealtimeHub) -> None:
    """Subscribe the hub to delivery and inbox events."""
    handler = RealtimeHandler(service, hub)
    for event_type in REALTIME_EVENTS:
        register_event_handler(event_type)(handler.handle)
    logger.info("realtime_handler_registered", event_types=list(REALTIME_EVENTS))
