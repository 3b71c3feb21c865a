"""Presence Registry - who is connected right now.

Maps a resident's username, or a responder's stable id, to its live
connection. The registry is in-memory only and holds at most one entry per
identity: a new join replaces the old mapping but leaves the old connection
open. It is only mutated from the event loop, so it needs no locking.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import structlog

from .connection import Connection

logger = structlog.get_logger()


@dataclass
class ResponderPresence:
    identity: str
    display_name: str
    connection: Connection


class PresenceRegistry:
    def __init__(self):
        self._residents: Dict[str, Connection] = {}
        self._responders: Dict[str, ResponderPresence] = {}

    def register_resident(self, identity: str, connection: Connection) -> None:
        self._residents[identity] = connection
        logger.info("resident_joined", resident=identity, connection_id=connection.id)

    def register_responder(self, identity: str, display_name: str, connection: Connection) -> None:
        self._responders[identity] = ResponderPresence(identity, display_name, connection)
        logger.info(
            "responder_joined",
            responder=identity,
            responder_name=display_name,
            connection_id=connection.id,
        )

    def unregister(self, connection: Connection) -> List[str]:
        """Drop every entry that points at this connection; returns the identities removed."""
        removed = []

        for identity, conn in list(self._residents.items()):
            if conn is connection:
                del self._residents[identity]
                removed.append(identity)
                logger.info("resident_left", resident=identity)

        for identity, presence in list(self._responders.items()):
            if presence.connection is connection:
                del self._responders[identity]
                removed.append(identity)
                logger.info("responder_left", responder=identity)

        return removed

    def resolve_resident(self, identity: str) -> Optional[Connection]:
        return self._residents.get(identity)

    def responder(self, identity: str) -> Optional[ResponderPresence]:
        return self._responders.get(identity)

    def responder_connections(self, exclude: Optional[str] = None) -> List[Connection]:
        return [
            p.connection
            for identity, p in self._responders.items()
            if exclude is None or identity != exclude
        ]

    def connections_for_responders(self, identities: Iterable[str]) -> List[Connection]:
        wanted = set(identities)
        return [p.connection for identity, p in self._responders.items() if identity in wanted]

    def clear(self) -> None:
        self._residents.clear()
        self._responders.clear()

    @property
    def counts(self) -> Dict[str, int]:
        return {"residents": len(self._residents), "responders": len(self._responders)}
