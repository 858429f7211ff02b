# backend/api/routes/root.py

from fastapi import APIRouter

from core.config import settings

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the API and its features.
    """
    return {
        "message": settings.APP_TITLE,
        "version": "1.0",
        "architecture": "single process, in-memory stores, WebSocket fan-out",
        "features": ["ephemeral_identities", "direct_rooms", "group_rooms", "unread_counters", "typing"],
        "endpoints": {
            "websocket": "/ws",
            "users": "/users",
            "user_rooms": "/rooms/{user_id}",
            "room_messages": "/rooms/{room_id}/messages",
            "mark_read": "/rooms/{room_id}/read",
            "health": "/health",
        },
    }
