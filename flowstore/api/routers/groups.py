from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flowstore.api.deps import get_db_session
from flowstore.core.exceptions import GroupNotFoundError
from flowstore.crud.group import list_groups as list_group_rows
from flowstore.models.group import FlowGroup
from flowstore.schemas.common import CreatedResponse, MessageResponse
from flowstore.schemas.group import GroupMemberOut, GroupOut, GroupWriteRequest
from flowstore.services import group_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/groups", tags=["groups"])


def _storage_failure(error: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail={"error": error}
    )


def _group_out(group: FlowGroup) -> GroupOut:
    return GroupOut(
        id=group.id,
        name=group.name,
        color=group.color,
        team_id=group.team_id or None,
        accept_any=bool(group.accept_any),
        members=[GroupMemberOut(name=u.name, email=u.email) for u in group.members],
    )


@router.get("", response_model=list[GroupOut])
async def list_groups(
    session: AsyncSession = Depends(get_db_session),
) -> list[GroupOut]:
    groups = await list_group_rows(session)
    return [_group_out(g) for g in groups]


@router.get("/{group_id}", response_model=GroupOut)
async def get_group(
    group_id: str,
    session: AsyncSession = Depends(get_db_session),
) -> GroupOut:
    try:
        group = await group_service.get_group(session, group_id)
    except GroupNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Group not found"
        )
    return _group_out(group)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=CreatedResponse)
async def create_group(
    payload: GroupWriteRequest,
    session: AsyncSession = Depends(get_db_session),
) -> CreatedResponse:
    try:
        group_id = await group_service.create_group(
            session,
            name=payload.name,
            color=payload.color,
            members=payload.members,
            accept_any=payload.accept_any,
            team_id=payload.team_id,
        )
    except SQLAlchemyError:
        logger.exception("Error creating group")
        raise _storage_failure("Failed to create group")
    return CreatedResponse(id=group_id, message="Group created successfully")


@router.put("/{group_id}", response_model=MessageResponse)
async def update_group(
    group_id: str,
    payload: GroupWriteRequest,
    session: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    try:
        await group_service.update_group(
            session,
            group_id,
            name=payload.name,
            color=payload.color,
            members=payload.members,
            accept_any=payload.accept_any,
            team_id=payload.team_id,
        )
    except GroupNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Group not found"
        )
    except SQLAlchemyError:
        logger.exception(f"Error updating group {group_id}")
        raise _storage_failure("Failed to update group")
    return MessageResponse(message="Group updated successfully")


@router.delete("/{group_id}", response_model=MessageResponse)
async def delete_group(
    group_id: str,
    session: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    try:
        await group_service.remove_group(session, group_id)
    except SQLAlchemyError:
        logger.exception(f"Error deleting group {group_id}")
        raise _storage_failure("Failed to delete group")
    return MessageResponse(message="Group deleted successfully")
