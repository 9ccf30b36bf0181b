from __future__ import annotations

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from flowstore.models.group import FlowGroup, GroupMember


async def list_groups(session: AsyncSession) -> list[FlowGroup]:
    result = await session.execute(
        select(FlowGroup)
        .options(selectinload(FlowGroup.members))
        .order_by(FlowGroup.created_at.desc(), FlowGroup.id)
    )
    return list(result.scalars().all())


async def get_group(session: AsyncSession, group_id: str) -> FlowGroup | None:
    result = await session.execute(
        select(FlowGroup)
        .where(FlowGroup.id == group_id)
        .options(selectinload(FlowGroup.members))
    )
    return result.scalar_one_or_none()


async def create_group(
    session: AsyncSession,
    *,
    group_id: str,
    name: str,
    color: str | None,
    team_id: str | None,
    accept_any: bool,
) -> FlowGroup:
    group = FlowGroup(
        id=group_id,
        name=name,
        color=color,
        team_id=team_id,
        accept_any=accept_any,
    )
    session.add(group)
    await session.flush()
    return group


async def update_group_fields(
    session: AsyncSession,
    group: FlowGroup,
    *,
    name: str,
    color: str | None,
    team_id: str | None,
    accept_any: bool,
) -> FlowGroup:
    group.name = name
    group.color = color
    group.team_id = team_id
    group.accept_any = accept_any
    session.add(group)
    await session.flush()
    return group


async def clear_group_members(session: AsyncSession, group_id: str) -> None:
    await session.execute(delete(GroupMember).where(GroupMember.group_id == group_id))


async def add_group_member(
    session: AsyncSession, *, group_id: str, user_id: str, position: int
) -> None:
    await session.execute(
        insert(GroupMember).values(
            group_id=group_id, user_id=user_id, position=position
        )
    )


async def delete_group(session: AsyncSession, group_id: str) -> None:
    # Memberships go with it through ON DELETE CASCADE.
    await session.execute(delete(FlowGroup).where(FlowGroup.id == group_id))
    await session.commit()
