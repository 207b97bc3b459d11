from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, HTTPException, Query, status

from ..handlers import room_url
from ..schemas import CreateRoomRequest, RoomResponse, RoomsSnapshot, RoomState
from ..state import hub, registry

router = APIRouter(prefix="/api", tags=["rooms"])


async def _create(creator_client_id: Optional[str]) -> RoomResponse:
    room = registry.create(creator_client_id)
    await hub.broadcast_rooms(registry)
    return RoomResponse(room_id=room.id, url=room_url(room.id))


@router.post("/rooms", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room(req: Optional[CreateRoomRequest] = Body(default=None)):
    return await _create(req.client_id if req else None)


@router.get("/rooms", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room_via_get(client_id: Optional[str] = Query(default=None, alias="clientId")):
    # Kept for links that open a fresh room with a plain GET.
    return await _create((client_id or "").strip() or None)


@router.get("/rooms/list", response_model=RoomsSnapshot)
async def list_rooms():
    return registry.snapshot()


@router.get("/rooms/{room_id}", response_model=RoomState)
async def get_room(room_id: str):
    room = registry.get(room_id)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return room.public_state()
