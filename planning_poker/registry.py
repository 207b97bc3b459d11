"""Process-wide table of live rooms."""
from __future__ import annotations

import secrets
from typing import Dict, Iterator, List, Optional

from .constants import ROOM_ID_ALPHABET, ROOM_ID_LENGTH
from .errors import RoomNotFound
from .logging_config import get_logger
from .room import Room, now_ms, utc_iso
from .schemas import RoomsSnapshot, RoomSummary

logger = get_logger(__name__)


def normalize_room_id(room_id: Optional[str]) -> str:
    return str(room_id or "").strip().upper()


def random_room_id() -> str:
    return "".join(secrets.choice(ROOM_ID_ALPHABET) for _ in range(ROOM_ID_LENGTH))


class RoomRegistry:
    """Owns every :class:`Room`. Adds and removes never await, so they are
    atomic with respect to other coroutines on the event loop."""

    def __init__(self) -> None:
        self._rooms: Dict[str, Room] = {}

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return isinstance(room_id, str) and normalize_room_id(room_id) in self._rooms

    def __iter__(self) -> Iterator[Room]:
        return iter(list(self._rooms.values()))

    def clear(self) -> None:
        self._rooms.clear()

    # -------------------- Lifecycle -------------------- #

    def create(self, creator_client_id: Optional[str] = None) -> Room:
        room_id = random_room_id()
        while room_id in self._rooms:
            room_id = random_room_id()
        room = Room(room_id, created_by_client_id=creator_client_id)
        self._rooms[room_id] = room
        logger.info("Created room %s (creator=%s, %d live)", room_id, creator_client_id, len(self._rooms))
        return room

    def get(self, room_id: Optional[str]) -> Optional[Room]:
        return self._rooms.get(normalize_room_id(room_id))

    def require(self, room_id: Optional[str]) -> Room:
        room = self.get(room_id)
        if room is None:
            raise RoomNotFound()
        return room

    def _is_idle(self, room: Room, ttl: float, now: int) -> bool:
        return not room.participants and now - room.last_active_at > ttl * 1000

    def evict_idle(self, ttl: float, now: Optional[int] = None) -> bool:
        """Drop empty rooms inactive for more than *ttl* seconds.

        *now* is epoch milliseconds. Returns True if anything was removed.
        """
        now = now_ms() if now is None else now
        evicted = [rid for rid, room in self._rooms.items() if self._is_idle(room, ttl, now)]
        for rid in evicted:
            del self._rooms[rid]
        if evicted:
            logger.info("Evicted %d idle room(s): %s", len(evicted), ", ".join(evicted))
        return bool(evicted)

    async def evict_idle_locked(self, ttl: float) -> bool:
        """Like :meth:`evict_idle`, but takes each candidate's lock and re-checks."""
        evicted: List[str] = []
        for rid, room in list(self._rooms.items()):
            if not self._is_idle(room, ttl, now_ms()):
                continue
            async with room.lock:
                # A join may have slipped in while we waited for the lock.
                if self._rooms.get(rid) is room and self._is_idle(room, ttl, now_ms()):
                    del self._rooms[rid]
                    evicted.append(rid)
        if evicted:
            logger.info("Evicted %d idle room(s): %s", len(evicted), ", ".join(evicted))
        return bool(evicted)

    # -------------------- Projections -------------------- #

    def list_summaries(self) -> List[RoomSummary]:
        summaries = [room.summary() for room in self._rooms.values()]
        summaries.sort(key=lambda s: s.last_active_at, reverse=True)
        return summaries

    def snapshot(self) -> RoomsSnapshot:
        summaries = self.list_summaries()
        return RoomsSnapshot(rooms=summaries, total_rooms=len(summaries), generated_at=utc_iso())


__all__ = ["RoomRegistry", "normalize_room_id", "random_room_id"]
