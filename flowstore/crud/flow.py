from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, Iterable

from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from flowstore.models.flow import Flow, FlowEdge, FlowItem, FlowNode


# ==================== Flows ====================

async def get_flow(session: AsyncSession, flow_id: str) -> Flow | None:
    return await session.get(Flow, flow_id)


async def list_flows(session: AsyncSession) -> list[Flow]:
    result = await session.execute(
        select(Flow).order_by(Flow.created_at.desc(), Flow.id)
    )
    return list(result.scalars().all())


async def insert_flow(
    session: AsyncSession,
    *,
    flow_id: str,
    name: str,
    description: str | None,
    columns: list[Any],
    deadlines: dict[str, Any] | None,
    planner_team_id: str | None = None,
    planner_channel_id: str | None = None,
    planner_plan_id: str | None = None,
    planner_bucket_id: str | None = None,
) -> None:
    await session.execute(
        insert(Flow).values(
            id=flow_id,
            name=name,
            description=description,
            columns=columns,
            deadlines=deadlines,
            planner_team_id=planner_team_id,
            planner_channel_id=planner_channel_id,
            planner_plan_id=planner_plan_id,
            planner_bucket_id=planner_bucket_id,
        )
    )


async def update_flow_metadata(
    session: AsyncSession,
    flow_id: str,
    *,
    name: str,
    description: str | None,
    columns: list[Any],
    deadlines: dict[str, Any] | None,
    planner_team_id: str | None,
    planner_channel_id: str | None,
    planner_plan_id: str | None,
    planner_bucket_id: str | None,
    updated_at: dt.datetime,
) -> None:
    await session.execute(
        update(Flow)
        .where(Flow.id == flow_id)
        .values(
            name=name,
            description=description,
            planner_team_id=planner_team_id,
            planner_channel_id=planner_channel_id,
            planner_plan_id=planner_plan_id,
            planner_bucket_id=planner_bucket_id,
            columns=columns,
            deadlines=deadlines,
            updated_at=updated_at,
        )
    )


async def delete_flow(session: AsyncSession, flow_id: str) -> None:
    # Nodes, edges and items go with it through ON DELETE CASCADE.
    await session.execute(delete(Flow).where(Flow.id == flow_id))
    await session.commit()


# ==================== Nodes ====================

async def list_flow_nodes(session: AsyncSession, flow_id: str) -> list[FlowNode]:
    result = await session.execute(
        select(FlowNode).where(FlowNode.flow_id == flow_id).order_by(FlowNode.node_id)
    )
    return list(result.scalars().all())


async def get_node_ids(session: AsyncSession, flow_id: str) -> set[str]:
    result = await session.execute(
        select(FlowNode.node_id).where(FlowNode.flow_id == flow_id)
    )
    return set(result.scalars().all())


async def insert_node(
    session: AsyncSession,
    flow_id: str,
    *,
    node_id: str,
    node_type: str,
    x: float,
    y: float,
    data: Any,
) -> None:
    await session.execute(
        insert(FlowNode).values(
            id=str(uuid.uuid4()),
            flow_id=flow_id,
            node_id=node_id,
            node_type=node_type,
            position_x=x,
            position_y=y,
            data=data,
        )
    )


async def update_node(
    session: AsyncSession,
    flow_id: str,
    *,
    node_id: str,
    node_type: str,
    x: float,
    y: float,
    data: Any,
) -> None:
    await session.execute(
        update(FlowNode)
        .where(FlowNode.flow_id == flow_id, FlowNode.node_id == node_id)
        .values(node_type=node_type, position_x=x, position_y=y, data=data)
    )


async def delete_nodes(
    session: AsyncSession, flow_id: str, node_ids: Iterable[str]
) -> None:
    ids = list(node_ids)
    if not ids:
        return
    await session.execute(
        delete(FlowNode).where(FlowNode.flow_id == flow_id, FlowNode.node_id.in_(ids))
    )


async def has_node_of_type(session: AsyncSession, flow_id: str, node_type: str) -> bool:
    result = await session.execute(
        select(FlowNode.id)
        .where(FlowNode.flow_id == flow_id, FlowNode.node_type == node_type)
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


# ==================== Edges ====================

async def list_flow_edges(session: AsyncSession, flow_id: str) -> list[FlowEdge]:
    result = await session.execute(
        select(FlowEdge).where(FlowEdge.flow_id == flow_id).order_by(FlowEdge.edge_id)
    )
    return list(result.scalars().all())


async def get_edge_ids(session: AsyncSession, flow_id: str) -> set[str]:
    result = await session.execute(
        select(FlowEdge.edge_id).where(FlowEdge.flow_id == flow_id)
    )
    return set(result.scalars().all())


async def insert_edge(
    session: AsyncSession,
    flow_id: str,
    *,
    edge_id: str,
    source: str,
    target: str,
    label: str | None,
    data: dict[str, Any],
) -> None:
    await session.execute(
        insert(FlowEdge).values(
            id=str(uuid.uuid4()),
            flow_id=flow_id,
            edge_id=edge_id,
            source=source,
            target=target,
            label=label,
            data=data,
        )
    )


async def update_edge(
    session: AsyncSession,
    flow_id: str,
    *,
    edge_id: str,
    source: str,
    target: str,
    label: str | None,
    data: dict[str, Any],
) -> None:
    await session.execute(
        update(FlowEdge)
        .where(FlowEdge.flow_id == flow_id, FlowEdge.edge_id == edge_id)
        .values(source=source, target=target, label=label, data=data)
    )


async def delete_edges(
    session: AsyncSession, flow_id: str, edge_ids: Iterable[str]
) -> None:
    ids = list(edge_ids)
    if not ids:
        return
    await session.execute(
        delete(FlowEdge).where(FlowEdge.flow_id == flow_id, FlowEdge.edge_id.in_(ids))
    )


# ==================== Items ====================

async def list_flow_items(session: AsyncSession, flow_id: str) -> list[FlowItem]:
    result = await session.execute(
        select(FlowItem)
        .where(FlowItem.flow_id == flow_id)
        .order_by(FlowItem.created_at, FlowItem.id)
    )
    return list(result.scalars().all())


async def get_item_ids(session: AsyncSession, flow_id: str) -> set[str]:
    result = await session.execute(
        select(FlowItem.id).where(FlowItem.flow_id == flow_id)
    )
    return set(result.scalars().all())


async def insert_item(
    session: AsyncSession,
    flow_id: str,
    *,
    item_id: str,
    data: Any,
    current_node_id: str | None,
    status: str,
    history: list[Any],
    path_taken: list[Any],
    parallel_paths: dict[str, Any],
    created_at: dt.datetime,
) -> None:
    await session.execute(
        insert(FlowItem).values(
            id=item_id,
            flow_id=flow_id,
            data=data,
            current_node_id=current_node_id,
            status=status,
            history=history,
            path_taken=path_taken,
            parallel_paths=parallel_paths,
            created_at=created_at,
        )
    )


async def update_item(
    session: AsyncSession,
    flow_id: str,
    *,
    item_id: str,
    data: Any,
    current_node_id: str | None,
    status: str,
    history: list[Any],
    path_taken: list[Any],
    parallel_paths: dict[str, Any],
) -> None:
    await session.execute(
        update(FlowItem)
        .where(FlowItem.flow_id == flow_id, FlowItem.id == item_id)
        .values(
            data=data,
            current_node_id=current_node_id,
            status=status,
            history=history,
            path_taken=path_taken,
            parallel_paths=parallel_paths,
        )
    )


async def delete_items(
    session: AsyncSession, flow_id: str, item_ids: Iterable[str]
) -> None:
    ids = list(item_ids)
    if not ids:
        return
    await session.execute(
        delete(FlowItem).where(FlowItem.flow_id == flow_id, FlowItem.id.in_(ids))
    )
