# backend/services/room_store.py

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from core.config import settings
from core.errors import NotFoundError, ValidationError
from models.models import Message, MessageKind, RoomView, UserView
from services.identity_registry import IdentityRegistry

logger = logging.getLogger(__name__)

ROOM_KEY_SEPARATOR = "_"

# Shown in place of a partner the registry no longer knows about
LEFT_PLACEHOLDER_NAME = "left"


def derive_room_key(member_ids: Iterable[str]) -> str:
    """
    Deterministic key for a two-party room.

    Order independent: ``derive_room_key({a, b}) == derive_room_key({b, a})``.

    Raises:
        ValidationError: fewer than two distinct, non-blank member ids
    """
    members = sorted({m for m in member_ids if m})
    if len(members) != 2:
        raise ValidationError("a direct room needs exactly two distinct members")
    return ROOM_KEY_SEPARATOR.join(members)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Room:
    key: str
    members: Tuple[str, ...]
    is_group: bool = False
    name: str = ""
    created_at: int = field(default_factory=_now_ms)
    messages: List[Message] = field(default_factory=list)
    unread: Dict[str, int] = field(default_factory=dict)

    @property
    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None

    @property
    def last_activity(self) -> int:
        # Rooms without messages sort after every room that has one
        last = self.last_message
        return last.ts if last else 0


# ============================================================================
# ROOM STORE
# ============================================================================

class RoomStore:
    """
    In-memory rooms: membership, ordered history and per-member unread counters.

    Every method is synchronous and never awaits, so on the single event loop
    each call (e.g. append + unread increment) is atomic with respect to other
    connections' events.

    Attributes:
        rooms: Maps room_key -> Room (insertion order = creation order)

    Usage:
        store = RoomStore(registry)
        room = store.get_or_create({alice.id, bob.id})
        store.append_message(room.key, alice.id, "hi")
        store.snapshot(room.key, bob.id).unread  # 1
    """

    def __init__(self, registry: IdentityRegistry, max_message_length: int | None = None) -> None:
        self.rooms: Dict[str, Room] = {}
        self.registry = registry
        self.max_message_length = settings.MAX_MESSAGE_LENGTH if max_message_length is None else max_message_length

    # ------------------------------------------------------------------
    # Creation / lookup
    # ------------------------------------------------------------------

    def get_or_create(self, member_ids: Iterable[str]) -> Room:
        """
        Return the two-party room for these members, creating it on first contact.

        A new room starts with empty history and zero unread for both members.

        Raises:
            ValidationError: the key is held by a room that is not exactly this pair
        """
        member_ids = {m for m in member_ids if m}
        key = derive_room_key(member_ids)
        members = tuple(sorted(member_ids))
        room = self.rooms.get(key)
        if room is not None and (room.is_group or room.members != members):
            raise ValidationError("room key is taken by another room")
        if room is None:
            room = Room(key=key, members=members, unread={m: 0 for m in members})
            self.rooms[key] = room
            logger.info("✓ Created room %s", key)
        return room

    def create_group(self, member_ids: Iterable[str], name: str = "", room_key: str | None = None) -> Room:
        """
        Create a group room under an assigned key.

        Raises:
            ValidationError: fewer than two distinct members, the key is taken,
                or the key is shaped like a direct room key
        """
        members = tuple(dict.fromkeys(m for m in member_ids if m))
        if len(members) < 2:
            raise ValidationError("a group room needs at least two members")

        key = (room_key or "").strip() or uuid.uuid4().hex
        # Keys containing the separator belong to direct rooms
        if ROOM_KEY_SEPARATOR in key:
            raise ValidationError(f"room id must not contain '{ROOM_KEY_SEPARATOR}'")
        if key in self.rooms:
            raise ValidationError("room id already exists")

        room = Room(
            key=key,
            members=members,
            is_group=True,
            name=(name or "").strip(),
            unread={m: 0 for m in members},
        )
        self.rooms[key] = room
        logger.info("✓ Created group room '%s' (%s) with %d members", room.name, key, len(members))
        return room

    def get(self, room_key: str) -> Optional[Room]:
        return self.rooms.get(room_key)

    def require(self, room_key: str) -> Room:
        room = self.rooms.get(room_key)
        if room is None:
            raise NotFoundError("room not found")
        return room

    def require_member(self, room_key: str, member_id: str) -> Room:
        room = self.require(room_key)
        if member_id not in room.unread:
            raise NotFoundError("not a member of this room")
        return room

    # ------------------------------------------------------------------
    # Messages / unread
    # ------------------------------------------------------------------

    def append_message(
        self,
        room_key: str,
        sender_id: str,
        text: str,
        kind: MessageKind = MessageKind.TEXT,
    ) -> Message:
        """
        Append a message and bump every other member's unread counter.

        Nothing is mutated when validation fails.

        Raises:
            ValidationError: blank text for a text message, or text too long
            NotFoundError: unknown room, or sender is not a member
        """
        kind = MessageKind(kind)
        text = text or ""
        self.check_message(text, kind)
        room = self.require_member(room_key, sender_id)

        # Keep timestamps non-decreasing within a room even if the clock steps back
        ts = _now_ms()
        if room.messages and room.messages[-1].ts > ts:
            ts = room.messages[-1].ts

        message = Message(
            id=uuid.uuid4().hex,
            room_key=room.key,
            sender_id=sender_id,
            text=text,
            kind=kind,
            ts=ts,
        )
        room.messages.append(message)
        for member in room.members:
            if member != sender_id:
                room.unread[member] += 1
        return message

    def check_message(self, text: str, kind: MessageKind) -> None:
        """
        Raises:
            ValidationError: blank text for a text message, or text too long
        """
        if kind is MessageKind.TEXT and not (text or "").strip():
            raise ValidationError("text is required")
        if len(text or "") > self.max_message_length:
            raise ValidationError(f"text must be at most {self.max_message_length} characters")

    def reset_unread(self, room_key: str, member_id: str) -> bool:
        """Zero a member's unread counter. Returns False if room or member is absent."""
        room = self.rooms.get(room_key)
        if room is None or member_id not in room.unread:
            return False
        room.unread[member_id] = 0
        return True

    def unread_for(self, room_key: str, member_id: str) -> int:
        room = self.rooms.get(room_key)
        if room is None:
            return 0
        return room.unread.get(member_id, 0)

    def history(self, room_key: str) -> List[Message]:
        return list(self.require(room_key).messages)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def _partner_view(self, room: Room, viewer_id: str) -> Optional[UserView]:
        if room.is_group:
            return None
        partner_id = next((m for m in room.members if m != viewer_id), None)
        if partner_id is None:
            return None
        partner = self.registry.lookup(partner_id)
        if partner is None:
            return UserView(id=partner_id, name=LEFT_PLACEHOLDER_NAME, online=False)
        return partner.view()

    def snapshot(self, room_key: str, viewer_id: str) -> RoomView:
        """
        Project a room for one viewer: partner profile, last message, own unread.

        Raises:
            NotFoundError: unknown room
        """
        room = self.require(room_key)
        return RoomView(
            id=room.key,
            members=list(room.members),
            is_group=room.is_group,
            name=room.name,
            partner=self._partner_view(room, viewer_id),
            last_message=room.last_message,
            unread=room.unread.get(viewer_id, 0),
        )

    def rooms_for(self, member_id: str) -> List[RoomView]:
        """A member's rooms, most recent message first; empty rooms last."""
        # sorted() is stable, so ties keep creation order
        mine = sorted(self.member_rooms(member_id), key=lambda r: r.last_activity, reverse=True)
        return [self.snapshot(room.key, member_id) for room in mine]

    def member_rooms(self, member_id: str) -> List[Room]:
        return [room for room in self.rooms.values() if member_id in room.unread]

    @property
    def room_count(self) -> int:
        return len(self.rooms)

    @property
    def message_count(self) -> int:
        return sum(len(room.messages) for room in self.rooms.values())
