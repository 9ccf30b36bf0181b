from __future__ import annotations

from fastapi import APIRouter

from flowstore.api.routers import flows, groups

api_router = APIRouter()
api_router.include_router(flows.router)
api_router.include_router(groups.router)
