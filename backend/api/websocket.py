# backend/api/websocket.py

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from api.deps import get_connection_manager, get_registry, get_room_store
from services.connection_manager import ConnectionManager
from services.identity_registry import IdentityRegistry
from services.room_store import RoomStore
from services.session_handler import ChatSession

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    registry: IdentityRegistry = Depends(get_registry),
    room_store: RoomStore = Depends(get_room_store),
    connection_manager: ConnectionManager = Depends(get_connection_manager),
):
    """
    WebSocket endpoint for real-time chat.

    Protocol:
    =========
    Every frame is a JSON object with a "type" field.

    Client -> Server:
    -----------------
    Login (must come first):
        {"type": "LOGIN", "name": "Alice", "avatar": "🌸"}
        Response: {"type": "SESSION", "me": {...}, "users": [...]}
        Others:   {"type": "USER_JOINED", "user": {...}}

    Open a direct room (created on first contact, marks it read):
        {"type": "OPEN_ROOM", "partnerId": "<user id>"}
        Response: {"type": "ROOM_OPENED", "room": {...}, "messages": [...]}

    Join an existing room you belong to (marks it read):
        {"type": "JOIN_ROOM", "roomKey": "<room key>"}
        Response: {"type": "ROOM_HISTORY", "roomKey": "...", "messages": [...]}

    Send a message (roomKey/roomId, or partnerId for first contact):
        {"type": "SEND_MESSAGE", "roomKey": "...", "text": "hi", "kind": "text"}
        All members: {"type": "NEW_MESSAGE", "message": {...}}

    Typing indicator:
        {"type": "TYPING", "roomKey": "..."}
        Other members: {"type": "TYPING", "roomKey": "...", "senderId": "..."}

    Mark read:
        {"type": "READ", "roomKey": "..."}

    Lifecycle:
    ==========
    1. Connection accepted, writer started
    2. LOGIN registers an identity and binds it to this connection
    3. Events are processed one at a time, to completion
    4. On disconnect the identity goes offline and others get USER_LEFT

    Error Handling:
        - Malformed, unknown or invalid frames: dropped, connection stays open
        - Unexpected errors: logged, connection closed with 1011
        - Peer dropped by the fabric: connection closed with 1013
    """
    connection = await connection_manager.connect(websocket)
    session = ChatSession(connection, registry, room_store, connection_manager)

    # Completes when the fabric drops this peer (slow reader or failed write)
    dropped = asyncio.create_task(connection.dead.wait())
    receiving: asyncio.Task | None = None

    try:
        while True:
            receiving = asyncio.create_task(websocket.receive())
            await asyncio.wait({receiving, dropped}, return_when=asyncio.FIRST_COMPLETED)
            if not receiving.done():
                logger.info("Closing dropped connection %s", connection.id)
                await _close_quietly(websocket, status.WS_1013_TRY_AGAIN_LATER)
                break

            message = receiving.result()
            if message["type"] == "websocket.disconnect":
                break

            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is None:
                continue

            await session.handle_frame(raw)

    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WebSocket error on connection %s", connection.id)
        await _close_quietly(websocket, status.WS_1011_INTERNAL_ERROR)
    finally:
        dropped.cancel()
        if receiving is not None and not receiving.done():
            receiving.cancel()
        session.close()
        await connection_manager.disconnect(connection)


async def _close_quietly(websocket: WebSocket, code: int) -> None:
    try:
        await websocket.close(code=code)
    except RuntimeError:
        # Already closed by the peer
        pass
