# backend/core/state.py
from __future__ import annotations

from datetime import datetime, timezone

from services.identity_registry import IdentityRegistry
from services.room_store import RoomStore
from services.connection_manager import ConnectionManager

# Global singletons for app state (process lifetime, nothing persisted)
registry = IdentityRegistry()
room_store = RoomStore(registry=registry)
connection_manager = ConnectionManager(registry=registry, room_store=room_store)

app_start_time: datetime = datetime.now(timezone.utc)
