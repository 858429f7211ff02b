# backend/services/session_handler.py

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

import pydantic

from core.config import settings
from core.errors import ChatError, NotFoundError, ValidationError
from models.events import (
    JoinRoomEvent,
    LoginEvent,
    NewMessageOut,
    OpenRoomEvent,
    ReadEvent,
    RoomHistoryOut,
    RoomOpenedOut,
    SendMessageEvent,
    SessionOut,
    TypingEvent,
    TypingOut,
    UserJoinedOut,
    UserLeftOut,
    decode_inbound,
)
from services.connection_manager import Connection, ConnectionManager
from services.identity_registry import IdentityRegistry
from services.room_store import RoomStore

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


# ============================================================================
# CHAT SESSION
# ============================================================================

class ChatSession:
    """
    Per-connection state machine.

    States:
        UNAUTHENTICATED -> AUTHENTICATED (LOGIN) -> CLOSED (disconnect)

    Every inbound frame is decoded once into a typed event and dispatched. The
    channel is best-effort: frames that do not decode, arrive in the wrong
    state, or fail validation are dropped without telling the peer, and the
    connection stays open. Only unexpected exceptions escape ``handle_frame``.

    A connection that the fabric drops (slow or broken peer) closes its
    session too, so the identity goes offline and others get USER_LEFT.

    Usage:
        session = ChatSession(connection, registry, room_store, connection_manager)
        await session.handle_frame(text)
        ...
        session.close()
    """

    def __init__(
        self,
        connection: Connection,
        registry: IdentityRegistry,
        room_store: RoomStore,
        connection_manager: ConnectionManager,
        max_frame_bytes: int | None = None,
    ) -> None:
        self.connection = connection
        self.registry = registry
        self.room_store = room_store
        self.connection_manager = connection_manager
        self.max_frame_bytes = settings.MAX_FRAME_BYTES if max_frame_bytes is None else max_frame_bytes
        self.state = SessionState.UNAUTHENTICATED
        self.identity_id: Optional[str] = None
        connection.on_drop(self.close)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_frame(self, raw: str | bytes) -> None:
        if self.state is SessionState.CLOSED:
            return
        size = len(raw) if isinstance(raw, bytes) else len(raw.encode("utf-8"))
        if size > self.max_frame_bytes:
            logger.debug("Dropped oversized frame (%d bytes) on %s", size, self.connection.id)
            return
        try:
            event = decode_inbound(raw)
        except pydantic.ValidationError as e:
            logger.debug("Dropped malformed frame on %s: %s", self.connection.id, e.errors()[:1])
            return
        await self.handle(event)

    async def handle(self, event) -> None:
        if self.state is SessionState.CLOSED:
            return
        try:
            self._dispatch(event)
        except ChatError as e:
            logger.debug("Dropped %s from %s: %s", event.type, self.identity_id or self.connection.id, e.message)

    def close(self) -> None:
        """Transition to CLOSED, announcing the departure if logged in."""
        if self.state is SessionState.CLOSED:
            return
        previous, self.state = self.state, SessionState.CLOSED
        if previous is SessionState.AUTHENTICATED and self.identity_id:
            left = self.registry.unregister(self.identity_id)
            if left is not None:
                self.connection_manager.send_to_all(UserLeftOut(user_id=left.id).to_wire(), excluding_id=left.id)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, event) -> None:
        if isinstance(event, LoginEvent):
            if self.state is not SessionState.UNAUTHENTICATED:
                raise ValidationError("already logged in")
            self._on_login(event)
            return

        if self.state is not SessionState.AUTHENTICATED:
            raise ValidationError("login required")

        if isinstance(event, OpenRoomEvent):
            self._on_open_room(event)
        elif isinstance(event, JoinRoomEvent):
            self._on_join_room(event)
        elif isinstance(event, SendMessageEvent):
            self._on_send_message(event)
        elif isinstance(event, TypingEvent):
            self._on_typing(event)
        elif isinstance(event, ReadEvent):
            self._on_read(event)
        else:
            raise TypeError(f"Unhandled event type: {type(event).__name__}")

    def _reply(self, event: dict) -> None:
        self.connection.send(event)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_login(self, event: LoginEvent) -> None:
        identity = self.registry.register(event.name, event.avatar)
        self.registry.bind(identity.id, self.connection)
        self.connection.identity_id = identity.id
        self.identity_id = identity.id
        self.state = SessionState.AUTHENTICATED

        me = identity.view()
        self._reply(SessionOut(me=me, users=self.registry.list_others(identity.id)).to_wire())
        self.connection_manager.send_to_all(UserJoinedOut(user=me).to_wire(), excluding_id=identity.id)

    def _on_open_room(self, event: OpenRoomEvent) -> None:
        if event.partner_id == self.identity_id:
            raise ValidationError("cannot open a room with yourself")
        if self.registry.lookup(event.partner_id) is None:
            raise NotFoundError("partner not found")

        room = self.room_store.get_or_create({self.identity_id, event.partner_id})
        self.room_store.reset_unread(room.key, self.identity_id)
        self._reply(
            RoomOpenedOut(
                room=self.room_store.snapshot(room.key, self.identity_id),
                messages=self.room_store.history(room.key),
            ).to_wire()
        )

    def _on_join_room(self, event: JoinRoomEvent) -> None:
        room = self.room_store.require_member(event.room_key, self.identity_id)
        self.room_store.reset_unread(room.key, self.identity_id)
        self._reply(RoomHistoryOut(room_key=room.key, messages=self.room_store.history(room.key)).to_wire())

    def _on_send_message(self, event: SendMessageEvent) -> None:
        if event.room_key:
            room_key = event.room_key
        else:
            if event.partner_id == self.identity_id:
                raise ValidationError("cannot message yourself")
            if self.registry.lookup(event.partner_id) is None:
                raise NotFoundError("partner not found")
            # Validate first so a rejected message never creates a room
            self.room_store.check_message(event.text, event.kind)
            room_key = self.room_store.get_or_create({self.identity_id, event.partner_id}).key

        message = self.room_store.append_message(room_key, self.identity_id, event.text, event.kind)
        self.connection_manager.send_to_room_members(room_key, NewMessageOut(message=message).to_wire())

    def _on_typing(self, event: TypingEvent) -> None:
        room = self.room_store.require_member(event.room_key, self.identity_id)
        self.connection_manager.send_to_room_members(
            room.key,
            TypingOut(room_key=room.key, sender_id=self.identity_id).to_wire(),
            excluding_id=self.identity_id,
        )

    def _on_read(self, event: ReadEvent) -> None:
        self.room_store.reset_unread(event.room_key, self.identity_id)
