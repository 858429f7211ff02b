# backend/api/deps.py
"""
FastAPI dependency providers for the process-wide stores.

Routes never touch ``core.state`` directly; tests swap the stores out with
``app.dependency_overrides``.
"""
from __future__ import annotations

from core import state
from services.connection_manager import ConnectionManager
from services.identity_registry import IdentityRegistry
from services.room_store import RoomStore


def get_registry() -> IdentityRegistry:
    return state.registry


def get_room_store() -> RoomStore:
    return state.room_store


def get_connection_manager() -> ConnectionManager:
    return state.connection_manager
