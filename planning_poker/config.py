"""Runtime configuration read from the environment."""
from __future__ import annotations

import os
from typing import List


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Empty rooms older than this are evicted by the idle reaper.
ROOM_IDLE_TTL_SECONDS = float(os.getenv("ROOM_IDLE_TTL_SECONDS", 30 * 60))
ROOM_CLEANUP_INTERVAL_SECONDS = float(os.getenv("ROOM_CLEANUP_INTERVAL_SECONDS", 60))

DEFAULT_VOTING_OPTIONS: List[str] = _env_list("VOTING_OPTIONS", "1,2,3,5,8,13,21,?,☕")

CORS_ALLOW_ORIGINS: List[str] = _env_list("CORS_ALLOW_ORIGINS", "*")

__all__ = [
    "HOST",
    "PORT",
    "LOG_LEVEL",
    "LOG_FILE",
    "ROOM_IDLE_TTL_SECONDS",
    "ROOM_CLEANUP_INTERVAL_SECONDS",
    "DEFAULT_VOTING_OPTIONS",
    "CORS_ALLOW_ORIGINS",
]
