# backend/services/connection_manager.py

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable, Dict, List, Optional

from fastapi import WebSocket

from core.config import settings
from services.identity_registry import IdentityRegistry
from services.room_store import RoomStore

logger = logging.getLogger(__name__)


# ============================================================================
# CONNECTION
# ============================================================================

class Connection:
    """
    A live WebSocket plus its outbound queue.

    ``send()`` never awaits: events are queued and written in order by a
    background writer task. A peer that stops draining (queue full) or whose
    write fails is marked dead and receives nothing further. No retries.

    Dying sets ``dead`` (the endpoint stops reading and closes the socket) and
    schedules the ``on_drop`` callbacks on the event loop, so a dropped peer
    goes offline without sending another frame.
    """

    def __init__(self, websocket: WebSocket, max_pending: int | None = None) -> None:
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.identity_id: Optional[str] = None
        self.alive = True
        self.dead = asyncio.Event()
        maxsize = settings.OUTBOUND_QUEUE_SIZE if max_pending is None else max_pending
        self._queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=maxsize)
        self._writer: Optional[asyncio.Task] = None
        self._drop_callbacks: List[Callable[[], None]] = []

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain(), name=f"ws-writer-{self.id}")

    def on_drop(self, callback: Callable[[], None]) -> None:
        self._drop_callbacks.append(callback)

    def send(self, event: dict) -> bool:
        """Queue an event for delivery. Returns False if it was dropped."""
        if not self.alive:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Outbound queue full for connection %s - dropping peer", self.id)
            self._drop()
            return False
        return True

    async def _drain(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.websocket.send_json(event)
            except Exception as e:
                logger.warning("Send error on connection %s: %s", self.id, e)
                self._mark_dead()
                return
            finally:
                self._queue.task_done()

    def _mark_dead(self) -> None:
        if not self.alive:
            return
        self.alive = False
        self.dead.set()
        # Deferred: send() may be running inside another session's fan-out
        loop = asyncio.get_running_loop()
        for callback in self._drop_callbacks:
            loop.call_soon(callback)

    def _drop(self) -> None:
        self._mark_dead()
        if self._writer is not None:
            self._writer.cancel()

    async def close(self) -> None:
        """Stop the writer. Anything still queued is discarded."""
        self.alive = False
        self.dead.set()
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None


# ============================================================================
# WEBSOCKET CONNECTION MANAGER
# ============================================================================

class ConnectionManager:
    """
    Presence and broadcast fan-out over live WebSocket connections.

    Delivery targets are resolved through the identity registry (which holds
    each identity's live connection) and the room store (which holds room
    membership). Delivery is best-effort and at-most-once: an offline or dead
    recipient simply misses the event and has to catch up over HTTP.

    Data Structures:
        connections: Maps connection id -> Connection, for every accepted socket,
                     logged in or not
    """

    def __init__(self, registry: IdentityRegistry, room_store: RoomStore) -> None:
        self.connections: Dict[str, Connection] = {}
        self.registry = registry
        self.room_store = room_store

    async def connect(self, websocket: WebSocket) -> Connection:
        """Accept a new WebSocket and start its writer."""
        await websocket.accept()

        connection = Connection(websocket)
        connection.start()
        self.connections[connection.id] = connection

        logger.info("✓ Connection %s opened. Total: %d", connection.id, len(self.connections))
        return connection

    async def disconnect(self, connection: Connection) -> None:
        """Forget a connection and stop its writer. Safe to call twice."""
        if self.connections.pop(connection.id, None) is None:
            return
        await connection.close()
        logger.info(
            "✗ Connection %s (%s) closed. Total: %d",
            connection.id,
            connection.identity_id or "anonymous",
            len(self.connections),
        )

    def send_to_one(self, identity_id: str, event: dict) -> bool:
        identity = self.registry.lookup(identity_id)
        if identity is None or not identity.online or identity.connection is None:
            return False
        return identity.connection.send(event)

    def send_to_all(self, event: dict, excluding_id: str | None = None) -> int:
        """
        Fan out to every logged-in live connection.

        Returns:
            Number of connections the event was queued for
        """
        delivered = 0
        for connection in self.registry.live_connections(excluding_id=excluding_id):
            if connection.send(event):
                delivered += 1
        return delivered

    def send_to_room_members(self, room_key: str, event: dict, excluding_id: str | None = None) -> int:
        """
        Fan out to each room member that is currently online.

        Members that are offline, or that drop mid-broadcast, are skipped.
        """
        room = self.room_store.get(room_key)
        if room is None:
            logger.debug("[routing] Skipped broadcast: room=%s does not exist", room_key)
            return 0

        delivered = 0
        for member_id in room.members:
            if member_id == excluding_id:
                continue
            if self.send_to_one(member_id, event):
                delivered += 1

        logger.debug("📨 Broadcast to room %s: %d/%d members", room_key, delivered, len(room.members))
        return delivered

    @property
    def connection_count(self) -> int:
        return len(self.connections)
