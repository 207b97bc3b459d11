from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..handlers import handle_disconnect, handle_frame
from ..logging_config import get_logger
from ..state import hub, registry

router = APIRouter(prefix="", tags=["ws"])

logger = get_logger(__name__)


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    channel = hub.connect(ws)
    # New channels get the monitoring view straight away.
    await channel.send({"type": "rooms:state", "data": registry.snapshot().model_dump(mode="json")})
    try:
        while True:
            raw = await ws.receive_text()
            reply = await handle_frame(channel, raw)
            if reply is not None:
                await channel.send(reply)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WebSocket error on channel %s", channel.id)
    finally:
        await handle_disconnect(channel)
