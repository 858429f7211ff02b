"""Shared test fixtures: fresh stores per test and an app client wired to them."""
import asyncio

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from api.deps import get_connection_manager, get_registry, get_room_store
from main import app
from services.connection_manager import Connection, ConnectionManager
from services.identity_registry import IdentityRegistry
from services.room_store import RoomStore
from services.session_handler import ChatSession


class FakeWebSocket:
    """Records what the server sends; optionally fails every write."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.accepted = False
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("peer went away")
        self.sent.append(data)

    def of_type(self, event_type):
        return [e for e in self.sent if e.get("type") == event_type]


@pytest.fixture
def registry():
    return IdentityRegistry()


@pytest.fixture
def room_store(registry):
    return RoomStore(registry=registry)


@pytest.fixture
def connection_manager(registry, room_store):
    return ConnectionManager(registry=registry, room_store=room_store)


@pytest.fixture
def client(registry, room_store, connection_manager):
    """TestClient whose routes and WebSocket endpoint see this test's stores."""
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_room_store] = lambda: room_store
    app.dependency_overrides[get_connection_manager] = lambda: connection_manager
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def settle():
    """Let queued writer tasks flush to their fake sockets."""

    async def _settle():
        for _ in range(5):
            await asyncio.sleep(0)

    return _settle


@pytest_asyncio.fixture
async def open_session(registry, room_store, connection_manager):
    """Factory for a connected ChatSession over a FakeWebSocket."""
    opened = []

    async def _open(fail: bool = False, max_pending=None, start: bool = True):
        websocket = FakeWebSocket(fail=fail)
        await websocket.accept()
        connection = Connection(websocket, max_pending=max_pending)
        if start:
            connection.start()
        connection_manager.connections[connection.id] = connection
        opened.append(connection)
        session = ChatSession(connection, registry, room_store, connection_manager)
        return session, websocket

    yield _open

    for connection in opened:
        await connection.close()
