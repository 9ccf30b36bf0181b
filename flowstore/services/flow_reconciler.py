"""Transactional create/update of flow graphs.

An update receives the complete desired graph and converges the stored rows to
it with the smallest set of deletes, updates and inserts, keyed by the ids the
client assigned. Rows that did not change keep their surrogate ids, so item
history tied to them survives an edit of an unrelated part of the graph.

Every call runs in a single transaction. Whatever goes wrong - a malformed body,
a dangling edge, a rejected statement - the transaction is rolled back and the
stored flow is left exactly as it was.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flowstore.core.exceptions import (
    FlowNotFoundError,
    FlowOperationError,
    FlowStorageError,
    FlowValidationError,
)
from flowstore.crud import flow as flow_crud
from flowstore.services.deadlines import sanitize_deadlines
from flowstore.services.flow_hydrator import DEFAULT_EDGE_TYPE

logger = logging.getLogger(__name__)

INITIAL_NODE_TYPE = "initial"
DEFAULT_ITEM_STATUS = "active"


def default_start_node() -> dict[str, Any]:
    return {
        "id": "initial",
        "type": INITIAL_NODE_TYPE,
        "position": {"x": 250, "y": 50},
        "data": {"label": "Start", "inputs": [], "deletable": False},
    }


@dataclass(frozen=True)
class IdReconciliation:
    to_delete: frozenset[str]
    to_update: frozenset[str]
    to_insert: frozenset[str]


def reconcile_ids(existing: Iterable[str], desired: Iterable[str]) -> IdReconciliation:
    existing_ids = set(existing)
    desired_ids = set(desired)
    return IdReconciliation(
        to_delete=frozenset(existing_ids - desired_ids),
        to_update=frozenset(existing_ids & desired_ids),
        to_insert=frozenset(desired_ids - existing_ids),
    )


# ==================== Payload helpers ====================

def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _parse_timestamp(value: Any) -> dt.datetime | None:
    if isinstance(value, dt.datetime):
        parsed = value
    elif isinstance(value, bool):
        return None
    elif isinstance(value, (int, float)):
        # Epoch milliseconds, as produced by JavaScript clients.
        try:
            parsed = dt.datetime.fromtimestamp(value / 1000, tz=dt.timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = dt.datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed.astimezone(dt.timezone.utc)


def normalize_created_at(value: Any, *, now: dt.datetime | None = None) -> dt.datetime:
    """Client timestamp in UTC truncated to whole seconds, or the write time."""
    parsed = _parse_timestamp(value) if value else None
    if value and parsed is None:
        logger.warning(f"Error parsing createdAt date {value!r}, using current time")
    return (parsed or now or _utcnow()).replace(microsecond=0)


def edge_payload(edge: Mapping[str, Any]) -> dict[str, Any]:
    """Edge ``data`` with a non-default ``type`` folded back in."""
    data = edge.get("data")
    payload = dict(data) if isinstance(data, Mapping) else {}
    edge_type = edge.get("type")
    if edge_type and edge_type != DEFAULT_EDGE_TYPE:
        payload["type"] = edge_type
    return payload


def _is_coordinate(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _node_is_valid(node: Any) -> bool:
    if not isinstance(node, Mapping):
        return False
    position = node.get("position")
    return bool(
        node.get("id")
        and node.get("type")
        and isinstance(position, Mapping)
        and _is_coordinate(position.get("x"))
        and _is_coordinate(position.get("y"))
    )


def _describe(value: Any) -> str:
    text = repr(value)
    return text if len(text) <= 200 else text[:197] + "..."


# ==================== Validation ====================

def _validate_name(name: Any) -> None:
    if not isinstance(name, str) or not name.strip():
        raise FlowValidationError(
            "Flow name is required and must be a non-empty string"
        )


def _validate_lists(**fields: Any) -> None:
    for label, value in fields.items():
        if not isinstance(value, list):
            raise FlowValidationError(f"{label.capitalize()} must be an array")


def _validate_text(**fields: Any) -> None:
    for label, value in fields.items():
        if value is not None and not isinstance(value, str):
            raise FlowValidationError(f"{label} must be a string")


def _validate_graph(nodes: Sequence[Any], edges: Sequence[Any]) -> None:
    if not nodes:
        raise FlowValidationError("Flow must have at least one node")

    if not any(
        isinstance(n, Mapping) and n.get("type") == INITIAL_NODE_TYPE for n in nodes
    ):
        raise FlowValidationError("Flow must have an initial node")

    node_ids: set[str] = set()
    for node in nodes:
        if not _node_is_valid(node):
            raise FlowValidationError(f"Invalid node data: {_describe(node)}")
        node_id = str(node["id"])
        if node_id in node_ids:
            raise FlowValidationError(f"Duplicate node id: {node_id}")
        node_ids.add(node_id)

    for edge in edges:
        if not isinstance(edge, Mapping) or not (
            edge.get("id") and edge.get("source") and edge.get("target")
        ):
            raise FlowValidationError(f"Invalid edge data: {_describe(edge)}")
        source, target = str(edge["source"]), str(edge["target"])
        if source not in node_ids or target not in node_ids:
            raise FlowValidationError(
                "Edge references non-existent nodes: "
                f"source={source}, target={target}"
            )


# ==================== Row writers ====================

def _node_values(node: Mapping[str, Any]) -> dict[str, Any]:
    position = node["position"]
    return {
        "node_id": str(node["id"]),
        "node_type": str(node["type"]),
        "x": float(position["x"]),
        "y": float(position["y"]),
        "data": node.get("data"),
    }


def _edge_values(edge: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "edge_id": str(edge["id"]),
        "source": str(edge["source"]),
        "target": str(edge["target"]),
        "label": edge.get("label") or None,
        "data": edge_payload(edge),
    }


def _item_values(item: Mapping[str, Any]) -> dict[str, Any]:
    current = item.get("currentNodeId")
    return {
        "data": item.get("data"),
        "current_node_id": str(current) if current else None,
        "status": item.get("status") or DEFAULT_ITEM_STATUS,
        "history": item.get("history") or [],
        "path_taken": item.get("pathTaken") or [],
        "parallel_paths": item.get("parallelPaths") or {},
    }


async def _insert_item(
    session: AsyncSession, flow_id: str, item: Mapping[str, Any]
) -> None:
    await flow_crud.insert_item(
        session,
        flow_id,
        item_id=str(item.get("id") or uuid.uuid4()),
        created_at=normalize_created_at(item.get("createdAt")),
        **_item_values(item),
    )


async def _ensure_start_node(session: AsyncSession, flow_id: str) -> None:
    """Insert the default start node when the flow has no initial node."""
    if await flow_crud.has_node_of_type(session, flow_id, INITIAL_NODE_TYPE):
        return
    logger.warning(f"Flow {flow_id} has no initial node, inserting default start node")
    node = default_start_node()
    if node["id"] in await flow_crud.get_node_ids(session, flow_id):
        node["id"] = f"initial-{uuid.uuid4().hex[:8]}"
    await flow_crud.insert_node(session, flow_id, **_node_values(node))


# ==================== Create ====================

async def create_flow(
    session: AsyncSession,
    *,
    name: Any,
    description: Any = None,
    columns: Any = None,
    nodes: Any = None,
    edges: Any = None,
    items: Any = None,
    deadlines: Any = None,
    planner_team_id: Any = None,
    planner_channel_id: Any = None,
    planner_plan_id: Any = None,
    planner_bucket_id: Any = None,
) -> str:
    """Create a flow with its graph and items. Returns the new flow id."""
    columns = [] if columns is None else columns
    nodes = [] if nodes is None else nodes
    edges = [] if edges is None else edges
    items = [] if items is None else items

    flow_id = str(uuid.uuid4())
    try:
        async with session.begin():
            _validate_name(name)
            _validate_text(
                Description=description,
                plannerTeamId=planner_team_id,
                plannerChannelId=planner_channel_id,
                plannerPlanId=planner_plan_id,
                plannerBucketId=planner_bucket_id,
            )
            _validate_lists(nodes=nodes, edges=edges, items=items, columns=columns)
            logger.info(
                f"Creating flow {name!r}: {len(nodes)} nodes, "
                f"{len(edges)} edges, {len(items)} items"
            )

            await flow_crud.insert_flow(
                session,
                flow_id=flow_id,
                name=name,
                description=description,
                columns=columns,
                deadlines=sanitize_deadlines(deadlines),
                planner_team_id=planner_team_id or None,
                planner_channel_id=planner_channel_id or None,
                planner_plan_id=planner_plan_id or None,
                planner_bucket_id=planner_bucket_id or None,
            )

            for node in nodes or [default_start_node()]:
                if not _node_is_valid(node):
                    raise FlowValidationError(f"Invalid node data: {_describe(node)}")
                await flow_crud.insert_node(session, flow_id, **_node_values(node))
            await _ensure_start_node(session, flow_id)

            for edge in edges:
                if not isinstance(edge, Mapping) or not (
                    edge.get("id") and edge.get("source") and edge.get("target")
                ):
                    raise FlowValidationError(f"Invalid edge data: {_describe(edge)}")
                await flow_crud.insert_edge(session, flow_id, **_edge_values(edge))

            for item in items:
                if not isinstance(item, Mapping):
                    raise FlowValidationError(f"Invalid item data: {_describe(item)}")
                await _insert_item(session, flow_id, item)
    except FlowOperationError as e:
        logger.error(f"Error creating flow, transaction rolled back: {e.message}")
        raise
    except SQLAlchemyError as e:
        logger.error(f"Error creating flow, transaction rolled back: {e}")
        raise FlowStorageError(str(e)) from e

    logger.info(f"Flow created with ID: {flow_id}")
    return flow_id


# ==================== Update ====================

async def update_flow(
    session: AsyncSession,
    flow_id: Any,
    *,
    name: Any,
    description: Any = None,
    columns: Any = None,
    nodes: Any = None,
    edges: Any = None,
    items: Any = None,
    planner_team_id: Any = None,
    planner_channel_id: Any = None,
    planner_plan_id: Any = None,
    planner_bucket_id: Any = None,
    deadlines: Any = None,
) -> None:
    """Converge a stored flow to the submitted desired state."""
    try:
        async with session.begin():
            if not isinstance(flow_id, str) or not flow_id:
                raise FlowValidationError("Invalid flow ID provided")
            _validate_name(name)
            _validate_text(
                Description=description,
                plannerTeamId=planner_team_id,
                plannerChannelId=planner_channel_id,
                plannerPlanId=planner_plan_id,
                plannerBucketId=planner_bucket_id,
            )
            _validate_lists(nodes=nodes, edges=edges, items=items, columns=columns)
            _validate_graph(nodes, edges)
            for item in items:
                if not isinstance(item, Mapping):
                    raise FlowValidationError(f"Invalid item data: {_describe(item)}")

            if await flow_crud.get_flow(session, flow_id) is None:
                raise FlowNotFoundError(flow_id)

            await _apply_update(
                session,
                flow_id,
                name=name,
                description=description,
                columns=columns,
                nodes=nodes,
                edges=edges,
                items=items,
                planner_team_id=planner_team_id,
                planner_channel_id=planner_channel_id,
                planner_plan_id=planner_plan_id,
                planner_bucket_id=planner_bucket_id,
                deadlines=deadlines,
            )
    except FlowOperationError as e:
        logger.error(f"Error updating flow {flow_id}, rolled back: {e.message}")
        raise
    except SQLAlchemyError as e:
        logger.error(f"Error updating flow {flow_id}, rolled back: {e}")
        raise FlowStorageError(str(e)) from e

    logger.info(f"Flow {flow_id} updated")


async def _apply_update(
    session: AsyncSession,
    flow_id: str,
    *,
    name: str,
    description: str | None,
    columns: list[Any],
    nodes: list[Mapping[str, Any]],
    edges: list[Mapping[str, Any]],
    items: list[Mapping[str, Any]],
    planner_team_id: str | None,
    planner_channel_id: str | None,
    planner_plan_id: str | None,
    planner_bucket_id: str | None,
    deadlines: Any,
) -> None:
    # 1. flow metadata
    sanitized = sanitize_deadlines(deadlines)
    logger.debug(f"Flow {flow_id} deadlines {deadlines!r} -> {sanitized!r}")
    await flow_crud.update_flow_metadata(
        session,
        flow_id,
        name=name,
        description=description,
        columns=columns,
        deadlines=sanitized,
        planner_team_id=planner_team_id or None,
        planner_channel_id=planner_channel_id or None,
        planner_plan_id=planner_plan_id or None,
        planner_bucket_id=planner_bucket_id or None,
        updated_at=_utcnow(),
    )

    # 2. current state
    existing_nodes = await flow_crud.get_node_ids(session, flow_id)
    existing_edges = await flow_crud.get_edge_ids(session, flow_id)
    existing_items = await flow_crud.get_item_ids(session, flow_id)

    # 3. nodes
    node_diff = reconcile_ids(existing_nodes, (str(n["id"]) for n in nodes))
    await flow_crud.delete_nodes(session, flow_id, sorted(node_diff.to_delete))
    for node in nodes:
        values = _node_values(node)
        if values["node_id"] in node_diff.to_update:
            await flow_crud.update_node(session, flow_id, **values)
        else:
            await flow_crud.insert_node(session, flow_id, **values)

    # 4. edges
    edge_diff = reconcile_ids(existing_edges, (str(e["id"]) for e in edges))
    await flow_crud.delete_edges(session, flow_id, sorted(edge_diff.to_delete))
    for edge in edges:
        values = _edge_values(edge)
        if values["edge_id"] in edge_diff.to_update:
            await flow_crud.update_edge(session, flow_id, **values)
        else:
            await flow_crud.insert_edge(session, flow_id, **values)

    # 5. items
    item_diff = reconcile_ids(
        existing_items, (str(i["id"]) for i in items if i.get("id"))
    )
    await flow_crud.delete_items(session, flow_id, sorted(item_diff.to_delete))
    for item in items:
        item_id = str(item["id"]) if item.get("id") else None
        if item_id is not None and item_id in item_diff.to_update:
            await flow_crud.update_item(
                session, flow_id, item_id=item_id, **_item_values(item)
            )
        else:
            await _insert_item(session, flow_id, item)

    # 6. there is always a way in
    await _ensure_start_node(session, flow_id)
