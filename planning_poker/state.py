"""Centralised in-memory runtime state.

This keeps the singletons that are shared across the whole application so
other modules can simply import them without worrying about circular
imports. Everything here is lost on restart.
"""
from __future__ import annotations

from .hub import ConnectionHub
from .registry import RoomRegistry

registry = RoomRegistry()

# Every open websocket, with the (room_id, client_id) session bound to it
hub = ConnectionHub()

__all__ = ["registry", "hub"]
