"""Real-time fan-out: maps open websocket channels to rooms and pushes snapshots."""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

from .logging_config import get_logger
from .registry import RoomRegistry
from .room import Room

logger = get_logger(__name__)


@dataclass
class Channel:
    """One open websocket plus the explicit session bound to it."""

    id: str
    websocket: WebSocket
    room_id: Optional[str] = None
    client_id: Optional[str] = None

    @property
    def has_session(self) -> bool:
        return bool(self.room_id and self.client_id)

    async def send(self, payload: Dict[str, Any]) -> bool:
        try:
            await self.websocket.send_json(payload)
            return True
        except Exception as exc:
            # Client disconnected unexpectedly; the receive loop cleans up.
            logger.warning("Send to channel %s failed: %s", self.id, exc)
            return False


class ConnectionHub:
    """Non-owning association of channels to rooms. Never mutates rooms."""

    def __init__(self) -> None:
        self.channels: Dict[str, Channel] = {}

    def __len__(self) -> int:
        return len(self.channels)

    def clear(self) -> None:
        self.channels.clear()

    def connect(self, websocket: WebSocket) -> Channel:
        channel = Channel(id=uuid.uuid4().hex, websocket=websocket)
        self.channels[channel.id] = channel
        logger.debug("Channel %s connected (%d open)", channel.id, len(self.channels))
        return channel

    def disconnect(self, channel_id: str) -> Optional[Channel]:
        channel = self.channels.pop(channel_id, None)
        if channel is not None:
            logger.debug("Channel %s disconnected (%d open)", channel_id, len(self.channels))
        return channel

    def bind(self, channel_id: str, room_id: str, client_id: str) -> None:
        """Bind the session to *channel_id*; a reconnect unbinds the superseded channel."""
        channel = self.channels.get(channel_id)
        if channel is None:
            return
        for other in self.channels.values():
            if other is not channel and other.room_id == room_id and other.client_id == client_id:
                other.room_id = other.client_id = None
                logger.info("Channel %s superseded by %s for %s", other.id, channel_id, client_id)
        channel.room_id = room_id
        channel.client_id = client_id

    def members(self, room_id: str) -> List[Channel]:
        return [c for c in self.channels.values() if c.room_id == room_id]

    # -------------------- Broadcasting helpers -------------------- #

    async def broadcast_room_state(self, room: Room) -> None:
        """Send the *entire* room state snapshot to every channel joined to *room*."""
        room.touch()
        payload = {"type": "room:state", "data": room.public_state().model_dump(mode="json")}
        for channel in self.members(room.id):
            await channel.send(payload)

    async def broadcast_rooms(self, registry: RoomRegistry) -> None:
        """Push the rooms summary to *all* connected channels."""
        if not self.channels:
            return
        payload = {"type": "rooms:state", "data": registry.snapshot().model_dump(mode="json")}
        for channel in list(self.channels.values()):
            await channel.send(payload)


__all__ = ["Channel", "ConnectionHub"]
