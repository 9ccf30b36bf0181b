"""Groups of people assignable to flow steps.

Membership is keyed by email: each member is looked up in ``users`` and created
on first sight, then linked to the group. Updating a group replaces its whole
member list.
"""

from __future__ import annotations

import logging
import uuid
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from flowstore.core.exceptions import GroupNotFoundError
from flowstore.crud import group as group_crud
from flowstore.crud.user import get_or_create_user
from flowstore.models.group import FlowGroup
from flowstore.schemas.group import GroupMemberIn

logger = logging.getLogger(__name__)


async def _link_members(
    session: AsyncSession, group_id: str, members: Sequence[GroupMemberIn]
) -> None:
    linked: set[str] = set()
    for member in members:
        user = await get_or_create_user(session, email=member.email, name=member.name)
        if user.id in linked:
            continue
        await group_crud.add_group_member(
            session, group_id=group_id, user_id=user.id, position=len(linked)
        )
        linked.add(user.id)


async def create_group(
    session: AsyncSession,
    *,
    name: str,
    color: str | None,
    members: Sequence[GroupMemberIn],
    accept_any: bool = False,
    team_id: str | None = None,
) -> str:
    group_id = str(uuid.uuid4())
    async with session.begin():
        await group_crud.create_group(
            session,
            group_id=group_id,
            name=name,
            color=color,
            team_id=team_id or None,
            accept_any=accept_any,
        )
        await _link_members(session, group_id, members)
    logger.info(f"Group {group_id} created with {len(members)} members")
    return group_id


async def update_group(
    session: AsyncSession,
    group_id: str,
    *,
    name: str,
    color: str | None,
    members: Sequence[GroupMemberIn],
    accept_any: bool = False,
    team_id: str | None = None,
) -> None:
    async with session.begin():
        group = await group_crud.get_group(session, group_id)
        if group is None:
            raise GroupNotFoundError(group_id)

        await group_crud.update_group_fields(
            session,
            group,
            name=name,
            color=color,
            team_id=team_id or None,
            accept_any=accept_any,
        )
        await group_crud.clear_group_members(session, group_id)
        await _link_members(session, group_id, members)
    logger.info(f"Group {group_id} updated with {len(members)} members")


async def get_group(session: AsyncSession, group_id: str) -> FlowGroup:
    group = await group_crud.get_group(session, group_id)
    if group is None:
        raise GroupNotFoundError(group_id)
    return group


async def remove_group(session: AsyncSession, group_id: str) -> None:
    await group_crud.delete_group(session, group_id)
    logger.info(f"Group {group_id} deleted")
