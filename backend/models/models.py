# backend/models/models.py
from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Wire models: snake_case in Python, camelCase in JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class MessageKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    STICKER = "sticker"
    FILE = "file"


class UserView(CamelModel):
    """Public profile of an identity. Never carries the connection handle."""

    id: str
    name: str
    avatar: str = ""
    online: bool = True


class Message(CamelModel):
    id: str
    room_key: str
    sender_id: str
    text: str
    kind: MessageKind = MessageKind.TEXT
    ts: int  # epoch milliseconds

    model_config = ConfigDict(frozen=True)


class RoomView(CamelModel):
    """
    A room as seen by one member.

    ``partner`` is the other participant of a two-party room and is None for
    group rooms. ``unread`` is the viewer's own counter.
    """

    id: str
    members: List[str]
    is_group: bool = False
    name: str = ""
    partner: Optional[UserView] = None
    last_message: Optional[Message] = None
    unread: int = 0


class CreateGroupRoomRequest(CamelModel):
    name: str = ""
    member_ids: List[str] = Field(default_factory=list)
    room_id: Optional[str] = None
