# backend/models/events.py
"""
WebSocket envelope types.

Every frame is a JSON object with a string ``type`` discriminator. Inbound
frames are decoded once, here, into one of the ``*Event`` variants below;
anything that does not decode is dropped by the caller. Outbound frames are
built from the ``Outbound*`` models and serialised with ``to_wire()``.
"""
from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import AliasChoices, Field, TypeAdapter, model_validator

from models.models import CamelModel, Message, MessageKind, RoomView, UserView


# ============================================================================
# INBOUND (client -> server)
# ============================================================================

class LoginEvent(CamelModel):
    type: Literal["LOGIN"]
    name: str
    avatar: str = ""


class OpenRoomEvent(CamelModel):
    type: Literal["OPEN_ROOM"]
    partner_id: str


class JoinRoomEvent(CamelModel):
    type: Literal["JOIN_ROOM"]
    room_key: str = Field(validation_alias=AliasChoices("roomKey", "roomId", "room_key"))


class SendMessageEvent(CamelModel):
    """Target is either an existing room or a partner (first contact)."""

    type: Literal["SEND_MESSAGE"]
    room_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("roomKey", "roomId", "room_key")
    )
    partner_id: Optional[str] = None
    text: str = ""
    kind: MessageKind = MessageKind.TEXT

    @model_validator(mode="after")
    def _needs_target(self) -> "SendMessageEvent":
        if not self.room_key and not self.partner_id:
            raise ValueError("roomKey or partnerId is required")
        return self


class TypingEvent(CamelModel):
    type: Literal["TYPING"]
    room_key: str = Field(validation_alias=AliasChoices("roomKey", "roomId", "room_key"))


class ReadEvent(CamelModel):
    type: Literal["READ"]
    room_key: str = Field(validation_alias=AliasChoices("roomKey", "roomId", "room_key"))


InboundEvent = Annotated[
    Union[LoginEvent, OpenRoomEvent, JoinRoomEvent, SendMessageEvent, TypingEvent, ReadEvent],
    Field(discriminator="type"),
]

inbound_adapter: TypeAdapter[InboundEvent] = TypeAdapter(InboundEvent)


def decode_inbound(raw: str | bytes):
    """
    Parse and validate one inbound frame.

    Raises pydantic.ValidationError for bad JSON, unknown ``type`` values and
    missing or invalid fields.
    """
    return inbound_adapter.validate_json(raw)


# ============================================================================
# OUTBOUND (server -> client)
# ============================================================================

class SessionOut(CamelModel):
    type: Literal["SESSION"] = "SESSION"
    me: UserView
    users: List[UserView]


class RoomOpenedOut(CamelModel):
    type: Literal["ROOM_OPENED"] = "ROOM_OPENED"
    room: RoomView
    messages: List[Message]


class RoomHistoryOut(CamelModel):
    type: Literal["ROOM_HISTORY"] = "ROOM_HISTORY"
    room_key: str
    messages: List[Message]


class NewMessageOut(CamelModel):
    type: Literal["NEW_MESSAGE"] = "NEW_MESSAGE"
    message: Message


class UserJoinedOut(CamelModel):
    type: Literal["USER_JOINED"] = "USER_JOINED"
    user: UserView


class UserLeftOut(CamelModel):
    type: Literal["USER_LEFT"] = "USER_LEFT"
    user_id: str


class TypingOut(CamelModel):
    type: Literal["TYPING"] = "TYPING"
    room_key: str
    sender_id: str
