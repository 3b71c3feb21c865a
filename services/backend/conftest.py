"""Shared fixtures: a SQLite-backed report store and in-memory connections"""
from typing import Any, Dict, List

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel, create_engine

from domain.lifecycle import ReportLifecycle, Responder
from domain.models.report import ReportCreate
from infrastructure.database import ReportStore, make_session_maker
from infrastructure.realtime import Connection, EventChannel, PresenceRegistry

REPORT_TYPES = ["medical", "fire", "flood", "crime", "rescue", "other"]


class RecordingConnection(Connection):
    """Collects every message pushed to it"""

    def __init__(self):
        super().__init__()
        self.messages: List[Dict[str, Any]] = []

    async def send(self, message: Dict[str, Any]) -> None:
        self.messages.append(message)

    def events(self, name: str = None) -> List[Dict[str, Any]]:
        return [m for m in self.messages if name is None or m["event"] == name]


class BrokenConnection(Connection):
    async def send(self, message: Dict[str, Any]) -> None:
        raise ConnectionResetError("socket closed")


@pytest.fixture
def db_url(tmp_path):
    """Create the schema synchronously, return the async URL"""
    path = tmp_path / "zapalert.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    SQLModel.metadata.create_all(sync_engine)
    sync_engine.dispose()
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture
async def store(db_url):
    engine = create_async_engine(db_url)
    yield ReportStore(make_session_maker(engine))
    await engine.dispose()


@pytest.fixture
def presence():
    return PresenceRegistry()


@pytest.fixture
def channel(presence):
    return EventChannel(presence)


@pytest.fixture
def lifecycle(store, channel):
    return ReportLifecycle(store, channel, REPORT_TYPES)


@pytest.fixture
def broken_connection(channel):
    conn = BrokenConnection()
    channel.connect(conn)
    return conn


@pytest.fixture
def connect(channel, presence):
    """Open a recording connection, optionally joined as a resident or responder"""

    def _connect(resident: str = None, responder: str = None, name: str = None) -> RecordingConnection:
        conn = RecordingConnection()
        channel.connect(conn)
        if resident:
            presence.register_resident(resident, conn)
        if responder:
            presence.register_responder(responder, name or responder, conn)
        return conn

    return _connect


@pytest.fixture
def fire_report():
    return ReportCreate(
        type="Fire",
        description="Kitchen fire, second floor",
        username="juan",
        first_name="Juan",
        last_name="Dela Cruz",
        contact_number="09171234567",
        latitude=10.30,
        longitude=123.90,
    )


@pytest.fixture
def maria():
    return Responder(identity="maria", display_name="Maria Santos")


@pytest.fixture
def pedro():
    return Responder(identity="pedro", display_name="Pedro Reyes")
