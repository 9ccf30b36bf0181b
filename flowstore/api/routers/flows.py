from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flowstore.api.deps import get_db_session
from flowstore.core.exceptions import FlowNotFoundError, FlowOperationError
from flowstore.schemas.common import CreatedResponse, MessageResponse
from flowstore.schemas.flow import FlowCreateRequest, FlowUpdateRequest
from flowstore.services import flow_reconciler
from flowstore.services.flow_service import get_flow_view, list_flow_views, remove_flow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/flows", tags=["flows"])


@router.get("")
async def list_flows(
    session: AsyncSession = Depends(get_db_session),
) -> list[dict[str, Any]]:
    return await list_flow_views(session)


@router.get("/{flow_id}")
async def get_flow(
    flow_id: str,
    session: AsyncSession = Depends(get_db_session),
) -> dict[str, Any]:
    try:
        return await get_flow_view(session, flow_id)
    except FlowNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Flow not found"
        )


@router.post(
    "", status_code=status.HTTP_201_CREATED, response_model=CreatedResponse
)
async def create_flow(
    payload: FlowCreateRequest,
    session: AsyncSession = Depends(get_db_session),
) -> CreatedResponse:
    try:
        flow_id = await flow_reconciler.create_flow(
            session,
            name=payload.name,
            description=payload.description,
            columns=payload.columns,
            nodes=payload.nodes,
            edges=payload.edges,
            items=payload.items,
            deadlines=payload.deadlines,
            planner_team_id=payload.plannerTeamId,
            planner_channel_id=payload.plannerChannelId,
            planner_plan_id=payload.plannerPlanId,
            planner_bucket_id=payload.plannerBucketId,
        )
    except FlowOperationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "Failed to create flow",
                "details": e.message,
                "rollback": "Transaction rolled back - no partial data was created",
            },
        )

    return CreatedResponse(id=flow_id, message="Flow created successfully")


@router.put("/{flow_id}", response_model=MessageResponse)
async def update_flow(
    flow_id: str,
    payload: FlowUpdateRequest,
    session: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    try:
        await flow_reconciler.update_flow(
            session,
            flow_id,
            name=payload.name,
            description=payload.description,
            columns=payload.columns,
            nodes=payload.nodes,
            edges=payload.edges,
            items=payload.items,
            planner_team_id=payload.plannerTeamId,
            planner_channel_id=payload.plannerChannelId,
            planner_plan_id=payload.plannerPlanId,
            planner_bucket_id=payload.plannerBucketId,
            deadlines=payload.deadlines,
        )
    except FlowNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Flow not found"
        )
    except FlowOperationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "Failed to update flow",
                "details": e.message,
                "rollback": "Transaction rolled back - no data was lost",
            },
        )

    return MessageResponse(message="Flow updated successfully")


@router.delete("/{flow_id}", response_model=MessageResponse)
async def delete_flow(
    flow_id: str,
    session: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    try:
        await remove_flow(session, flow_id)
    except SQLAlchemyError:
        logger.exception(f"Error deleting flow {flow_id}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to delete flow"},
        )
    return MessageResponse(message="Flow deleted successfully")
