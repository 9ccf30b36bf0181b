from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from flowstore.core.exceptions import FlowNotFoundError
from flowstore.crud import flow as flow_crud
from flowstore.services.flow_hydrator import load_flow, load_flow_safely

logger = logging.getLogger(__name__)


async def list_flow_views(session: AsyncSession) -> list[dict[str, Any]]:
    flows = await flow_crud.list_flows(session)
    logger.info(f"Found flows: {len(flows)}")
    return [await load_flow_safely(session, flow) for flow in flows]


async def get_flow_view(session: AsyncSession, flow_id: str) -> dict[str, Any]:
    flow = await flow_crud.get_flow(session, flow_id)
    if flow is None:
        raise FlowNotFoundError(flow_id)
    return await load_flow(session, flow)


async def remove_flow(session: AsyncSession, flow_id: str) -> None:
    await flow_crud.delete_flow(session, flow_id)
    logger.info(f"Flow {flow_id} deleted")
