from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import config
from .logging_config import get_logger
from .reaper import start_reaper, stop_reaper
from .routers import health as health_router
from .routers import rooms as rooms_router
from .routers import websockets as ws_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    reaper = start_reaper()
    logger.info("Planning poker server started")
    try:
        yield
    finally:
        await stop_reaper(reaper)
        logger.info("Planning poker server stopped")


# -----------------------------
# FastAPI app instance
# -----------------------------

app = FastAPI(title="Planning Poker", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(health_router.router)
app.include_router(rooms_router.router)
app.include_router(ws_router.router)

__all__ = ["app"]
