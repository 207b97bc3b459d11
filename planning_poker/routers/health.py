from __future__ import annotations

from fastapi import APIRouter

from ..room import utc_iso
from ..schemas import HealthResponse

router = APIRouter(prefix="", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(ok=True, timestamp=utc_iso())
