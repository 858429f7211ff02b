# backend/api/routes/rooms.py

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from api.deps import get_registry, get_room_store
from models.models import CreateGroupRoomRequest, Message, RoomView
from services.identity_registry import IdentityRegistry
from services.room_store import RoomStore

router = APIRouter()

# ============================================================================
# ROOM QUERY ENDPOINTS
# ============================================================================

@router.get("/rooms/{user_id}", response_model=List[RoomView])
async def list_user_rooms(
    user_id: str,
    registry: IdentityRegistry = Depends(get_registry),
    room_store: RoomStore = Depends(get_room_store),
):
    """
    List a user's rooms, most recent message first.

    Rooms without any message come last. Each entry carries the partner's
    profile, the last message and the user's own unread count.

    Raises:
        HTTPException: 404 if the user was never registered
    """
    if registry.lookup(user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    return room_store.rooms_for(user_id)


@router.get("/rooms/{room_id}/messages", response_model=List[Message])
async def list_room_messages(room_id: str, room_store: RoomStore = Depends(get_room_store)):
    """
    Full message history of a room, oldest first.

    Raises:
        NotFoundError: 404 if the room does not exist
    """
    return room_store.history(room_id)


@router.patch("/rooms/{room_id}/read")
async def mark_room_read(
    room_id: str,
    user_id: str = Query(..., alias="userId"),
    room_store: RoomStore = Depends(get_room_store),
):
    """
    Reset a member's unread counter for a room.

    Raises:
        NotFoundError: 404 if the room does not exist or the user is not a member
    """
    room_store.require_member(room_id, user_id)
    room_store.reset_unread(room_id, user_id)
    return {"ok": True}


@router.post(
    "/rooms",
    response_model=RoomView,
    status_code=status.HTTP_201_CREATED,
)
async def create_group_room(
    request: CreateGroupRoomRequest,
    registry: IdentityRegistry = Depends(get_registry),
    room_store: RoomStore = Depends(get_room_store),
):
    """
    Create a group room.

    Direct (two-party) rooms are created implicitly over the WebSocket; group
    rooms need an explicit member list and get an assigned id.

    Returns:
        RoomView: The new room as seen by its first member

    Raises:
        HTTPException: 404 if a member is unknown
        ValidationError: 400 if fewer than two members or the id is taken
    """
    for member_id in request.member_ids:
        if registry.lookup(member_id) is None:
            raise HTTPException(status_code=404, detail=f"User not found: {member_id}")

    room = room_store.create_group(request.member_ids, name=request.name, room_key=request.room_id)
    return room_store.snapshot(room.key, room.members[0])
