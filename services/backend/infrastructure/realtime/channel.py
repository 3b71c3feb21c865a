"""Event Fan-out Channel - deliver domain events to live connections.

Delivery is at-most-once and best effort. A send that fails, or a recipient
that is not connected, is logged and dropped. It is never raised to the
producer.
"""
import asyncio
from typing import Dict, Iterable, List, Optional

import structlog

from domain.events import DomainEvent
from .connection import Connection
from .presence import PresenceRegistry

logger = structlog.get_logger()


class EventChannel:
    def __init__(self, presence: PresenceRegistry):
        self.presence = presence
        self._connections: Dict[str, Connection] = {}

    def connect(self, connection: Connection) -> None:
        self._connections[connection.id] = connection
        logger.info("client_connected", connection_id=connection.id)

    def disconnect(self, connection: Connection) -> None:
        self._connections.pop(connection.id, None)
        self.presence.unregister(connection)
        logger.info("client_disconnected", connection_id=connection.id)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def send_to(self, connection: Optional[Connection], event: DomainEvent) -> int:
        """Deliver to a single connection; ``None`` means the recipient is offline."""
        if connection is None:
            logger.debug("event_recipient_offline", push_event=event.event)
            return 0
        return await self._deliver([connection], event)

    async def send_to_resident(self, identity: str, event: DomainEvent) -> int:
        return await self.send_to(self.presence.resolve_resident(identity), event)

    async def send_to_responders(self, identities: Iterable[str], event: DomainEvent) -> int:
        return await self._deliver(self.presence.connections_for_responders(identities), event)

    async def broadcast_except(self, acting_identity: str, event: DomainEvent) -> int:
        """Every live responder except ``acting_identity``"""
        return await self._deliver(self.presence.responder_connections(exclude=acting_identity), event)

    async def broadcast_all(self, event: DomainEvent) -> int:
        """Every live connection, joined or not, whatever its role"""
        return await self._deliver(list(self._connections.values()), event)

    async def _deliver(self, connections: List[Connection], event: DomainEvent) -> int:
        if not connections:
            return 0

        message = event.wire()
        results = await asyncio.gather(
            *(conn.send(message) for conn in connections), return_exceptions=True
        )

        delivered = 0
        for conn, result in zip(connections, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "event_delivery_failed",
                    push_event=event.event,
                    connection_id=conn.id,
                    error=str(result),
                )
            else:
                delivered += 1

        logger.debug("event_delivered", push_event=event.event, recipients=delivered)
        return delivered
