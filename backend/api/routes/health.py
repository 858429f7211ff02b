# backend/api/routes/health.py

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from api.deps import get_connection_manager, get_registry, get_room_store
from core import state
from services.connection_manager import ConnectionManager
from services.identity_registry import IdentityRegistry
from services.room_store import RoomStore

router = APIRouter()

@router.get("/health")
async def health(
    registry: IdentityRegistry = Depends(get_registry),
    room_store: RoomStore = Depends(get_room_store),
    connection_manager: ConnectionManager = Depends(get_connection_manager),
):
    """
    Health check endpoint.

    Returns current system status with connection, presence, room and
    message counts. Used by container health probes and monitoring.
    """
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()
    return {
        "status": "healthy",
        "connections": connection_manager.connection_count,
        "online_users": registry.online_count,
        "rooms": room_store.room_count,
        "messages": room_store.message_count,
        "uptime_seconds": round(uptime_seconds, 1),
    }
