from __future__ import annotations

import datetime as dt

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from flowstore.api.deps import get_db_session

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(session: AsyncSession = Depends(get_db_session)) -> dict:
    # Basic DB connectivity check
    await session.execute(text("SELECT 1"))
    return {
        "status": "OK",
        "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
    }
