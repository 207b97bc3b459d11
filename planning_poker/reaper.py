"""Background sweep that evicts empty, long-inactive rooms."""
from __future__ import annotations

import asyncio
from typing import Optional

from . import config
from .logging_config import get_logger
from .state import hub, registry

logger = get_logger(__name__)


async def sweep_once(ttl: float) -> bool:
    """Evict idle rooms and push the rooms summary if anything went away."""
    evicted = await registry.evict_idle_locked(ttl)
    if evicted:
        await hub.broadcast_rooms(registry)
    return evicted


async def reap_idle_rooms(interval: float, ttl: float) -> None:
    logger.info("Idle reaper running every %ss (ttl=%ss)", interval, ttl)
    while True:
        await asyncio.sleep(interval)
        try:
            await sweep_once(ttl)
        except Exception:
            logger.exception("Idle room sweep failed")


def start_reaper(
    interval: Optional[float] = None,
    ttl: Optional[float] = None,
) -> asyncio.Task:
    return asyncio.create_task(
        reap_idle_rooms(
            config.ROOM_CLEANUP_INTERVAL_SECONDS if interval is None else interval,
            config.ROOM_IDLE_TTL_SECONDS if ttl is None else ttl,
        )
    )


async def stop_reaper(task: asyncio.Task) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


__all__ = ["sweep_once", "reap_idle_rooms", "start_reaper", "stop_reaper"]
