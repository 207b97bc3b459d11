"""Inbound websocket event handlers.

Every handler takes the sender's :class:`~planning_poker.hub.Channel` and
the event ``data`` and returns an :class:`~planning_poker.schemas.Ack`. Domain
errors are converted to failure acks in :func:`handle_ws_message`, so a bad
request never reaches the transport as an exception. Successful mutations
hold the room lock until the room snapshot has been pushed, then publish the
rooms summary to every channel.
"""
from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import (
    InvalidPayload,
    InvalidScale,
    InvalidVote,
    RoomContextMissing,
    RoomError,
    RoomNotFound,
    UnknownEvent,
)
from .hub import Channel
from .logging_config import get_logger
from .registry import normalize_room_id
from .room import Room
from .schemas import (
    Ack,
    ClientMessage,
    CreateRoomRequest,
    JoinRoomPayload,
    UpdateSettingsPayload,
    VotePayload,
)
from .state import hub, registry

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

Handler = Callable[[Channel, Dict[str, Any]], Awaitable[Ack]]


def room_url(room_id: str) -> str:
    return f"/room/{room_id}"


def _parse(model: Type[M], data: Any, error: Type[RoomError]) -> M:
    try:
        return model.model_validate(data if isinstance(data, dict) else {})
    except ValidationError as exc:
        raise error() from exc


def _room_context(channel: Channel) -> Room:
    if not channel.has_session:
        raise RoomContextMissing()
    room = registry.get(channel.room_id)
    if room is None:
        raise RoomContextMissing()
    return room


async def _apply(room: Room, mutate: Callable[[], Any]) -> None:
    """Run *mutate* and push the resulting snapshot without letting another
    mutation of the same room interleave."""
    async with room.lock:
        mutate()
        await hub.broadcast_room_state(room)
    await hub.broadcast_rooms(registry)


async def _leave_current_room(channel: Channel) -> None:
    await _leave_room(channel.room_id, channel.id)


async def _leave_room(room_id: Optional[str], channel_id: str) -> None:
    if not room_id:
        return
    room = registry.get(room_id)
    if room is None:
        return
    async with room.lock:
        departed = room.leave(channel_id)
        if departed is not None:
            await hub.broadcast_room_state(room)
    if departed is not None:
        await hub.broadcast_rooms(registry)


# ---------------------------------------------------------------------------
# Event handlers
# ---------------------------------------------------------------------------

async def handle_create_room(channel: Channel, data: Dict[str, Any]) -> Ack:
    try:
        creator = CreateRoomRequest.model_validate(data if isinstance(data, dict) else {}).client_id
    except ValidationError:
        creator = None
    room = registry.create(creator)
    await hub.broadcast_rooms(registry)
    return Ack(ok=True, room_id=room.id, url=room_url(room.id))


async def handle_join_room(channel: Channel, data: Dict[str, Any]) -> Ack:
    payload = _parse(JoinRoomPayload, data, InvalidPayload)
    room_id = normalize_room_id(payload.room_id)
    if not room_id or not payload.name or not payload.client_id:
        raise InvalidPayload()

    room = registry.require(room_id)
    client_id = payload.client_id

    # One session per channel: switching room or identity gives up the old
    # one, but only once the new join has been accepted.
    previous_room_id: Optional[str] = None
    previous_client_id: Optional[str] = None
    if channel.has_session and (channel.room_id != room.id or channel.client_id != client_id):
        previous_room_id, previous_client_id = channel.room_id, channel.client_id

    async with room.lock:
        if registry.get(room.id) is not room:
            raise RoomNotFound()
        room.join(client_id, payload.name, channel.id)
        if previous_room_id == room.id and previous_client_id:
            room.remove_participant(previous_client_id)
        hub.bind(channel.id, room.id, client_id)
        ack = Ack(
            ok=True,
            room_id=room.id,
            is_admin=room.is_admin(client_id),
            voting_options=list(room.voting_options),
        )
        await hub.broadcast_room_state(room)
    await hub.broadcast_rooms(registry)
    if previous_room_id and previous_room_id != room.id:
        await _leave_room(previous_room_id, channel.id)
    return ack


async def handle_submit_vote(channel: Channel, data: Dict[str, Any]) -> Ack:
    room = _room_context(channel)
    payload = _parse(VotePayload, data, InvalidVote)
    await _apply(room, lambda: room.submit_vote(channel.client_id, payload.vote))
    return Ack(ok=True)


async def handle_start_round(channel: Channel, data: Dict[str, Any]) -> Ack:
    room = _room_context(channel)
    await _apply(room, lambda: room.start(channel.client_id))
    return Ack(ok=True)


async def handle_reveal_round(channel: Channel, data: Dict[str, Any]) -> Ack:
    room = _room_context(channel)
    await _apply(room, lambda: room.reveal(channel.client_id))
    return Ack(ok=True)


async def handle_reset_round(channel: Channel, data: Dict[str, Any]) -> Ack:
    room = _room_context(channel)
    await _apply(room, lambda: room.reset(channel.client_id))
    return Ack(ok=True)


async def handle_update_settings(channel: Channel, data: Dict[str, Any]) -> Ack:
    room = _room_context(channel)
    payload = _parse(UpdateSettingsPayload, data, InvalidScale)
    await _apply(room, lambda: room.update_voting_options(channel.client_id, payload.voting_options))
    return Ack(ok=True)


async def handle_disconnect(channel: Channel) -> None:
    """Channel loss is a lifecycle event: unbind it and drop its participant."""
    hub.disconnect(channel.id)
    try:
        await _leave_current_room(channel)
    except Exception:
        logger.exception("Cleanup for channel %s failed", channel.id)


HANDLERS: Dict[str, Handler] = {
    "room:create": handle_create_room,
    "room:join": handle_join_room,
    "vote:submit": handle_submit_vote,
    "round:start": handle_start_round,
    "round:reveal": handle_reveal_round,
    "round:reset": handle_reset_round,
    "room:update-settings": handle_update_settings,
}


# ---------------------------------------------------------------------------
# Single public entry points
# ---------------------------------------------------------------------------

async def handle_ws_message(channel: Channel, event: str, data: Dict[str, Any]) -> Ack:
    handler = HANDLERS.get(event)
    try:
        if handler is None:
            raise UnknownEvent()
        return await handler(channel, data)
    except RoomError as exc:
        logger.info("Rejected %s from channel %s: %s", event, channel.id, exc.message)
        return Ack(ok=False, error=exc.message, code=exc.code)
    except Exception:
        logger.exception("Unhandled error while processing %s from channel %s", event, channel.id)
        return Ack(ok=False, error="Request failed.", code="internal_error")


async def handle_frame(channel: Channel, raw: str) -> Optional[Dict[str, Any]]:
    """Decode one text frame, dispatch it and build the reply (if any).

    Replies carry the client's ``ack`` id; failures without an id are still
    reported as an ``error`` frame so they are never silently lost.
    """
    try:
        message = ClientMessage.model_validate(json.loads(raw))
    except (ValueError, ValidationError):
        logger.warning("Malformed frame on channel %s: %.200r", channel.id, raw)
        ack = Ack(ok=False, error="Malformed message.", code=InvalidPayload.code)
        return {"type": "error", "data": ack.model_dump(exclude_none=True)}

    ack = await handle_ws_message(channel, message.type, message.data)
    if message.ack is not None:
        return {"type": "ack", "ack": message.ack, "data": ack.model_dump(exclude_none=True)}
    if not ack.ok:
        return {"type": "error", "event": message.type, "data": ack.model_dump(exclude_none=True)}
    return None


__all__ = [
    "HANDLERS",
    "handle_ws_message",
    "handle_frame",
    "handle_disconnect",
    "handle_create_room",
    "handle_join_room",
    "handle_submit_vote",
    "handle_start_round",
    "handle_reveal_round",
    "handle_reset_round",
    "handle_update_settings",
    "room_url",
]
