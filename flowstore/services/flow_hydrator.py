"""Reassembles a flow's relational rows into the nested graph clients use.

Payload columns are read tolerantly: a value may already be structured, may be
a JSON-encoded string left behind by older writers, or may be missing. Values
that cannot be decoded fall back to an empty default and are logged; they never
fail the read.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from flowstore.crud.flow import list_flow_edges, list_flow_items, list_flow_nodes
from flowstore.models.flow import Flow, FlowEdge, FlowItem, FlowNode

logger = logging.getLogger(__name__)

DEFAULT_EDGE_TYPE = "default"


def parse_payload(value: Any, expected: type, default: Any, *, what: str) -> Any:
    """Decode a stored payload, returning ``default`` when it is unusable."""
    if value is None:
        return default

    if isinstance(value, str):
        text = value.strip()
        if not text or text == "null":
            return default
        try:
            value = json.loads(text)
        except ValueError as e:
            logger.warning(f"Could not parse {what}: {e}")
            return default

    if value is None:
        return default
    if not isinstance(value, expected):
        logger.warning(
            f"Unexpected {type(value).__name__} in {what}, "
            f"expected {expected.__name__}"
        )
        return default
    return value


def _coordinate(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def hydrate_node(node: FlowNode) -> dict[str, Any]:
    return {
        "id": node.node_id,
        "type": node.node_type,
        "position": {
            "x": _coordinate(node.position_x),
            "y": _coordinate(node.position_y),
        },
        "data": parse_payload(
            node.data, dict, {}, what=f"data of node {node.node_id}"
        ),
    }


def hydrate_edge(edge: FlowEdge) -> dict[str, Any]:
    data = parse_payload(edge.data, dict, {}, what=f"data of edge {edge.edge_id}")
    out: dict[str, Any] = {
        "id": edge.edge_id,
        "source": edge.source,
        "target": edge.target,
        "label": edge.label,
        "data": data,
    }

    # The edge kind travels inside the stored payload; surface it on read.
    edge_type = data.get("type")
    if edge_type and edge_type != DEFAULT_EDGE_TYPE:
        out["type"] = edge_type
        out["data"] = {k: v for k, v in data.items() if k != "type"}
    return out


def hydrate_item(item: FlowItem) -> dict[str, Any]:
    what = f"item {item.id}"
    return {
        "id": item.id,
        "data": parse_payload(item.data, dict, {}, what=f"data of {what}"),
        "currentNodeId": item.current_node_id,
        "status": item.status,
        "history": parse_payload(item.history, list, [], what=f"history of {what}"),
        "pathTaken": parse_payload(
            item.path_taken, list, [], what=f"path_taken of {what}"
        ),
        "parallelPaths": parse_payload(
            item.parallel_paths, dict, {}, what=f"parallel_paths of {what}"
        ),
        "createdAt": item.created_at,
    }


def hydrate_flow_scalars(flow: Flow) -> dict[str, Any]:
    return {
        "id": flow.id,
        "name": flow.name,
        "description": flow.description,
        "plannerTeamId": flow.planner_team_id or None,
        "plannerChannelId": flow.planner_channel_id or None,
        "plannerPlanId": flow.planner_plan_id or None,
        "plannerBucketId": flow.planner_bucket_id or None,
        "deadlines": parse_payload(
            flow.deadlines, dict, None, what=f"deadlines of flow {flow.id}"
        ),
        "createdAt": flow.created_at,
        "updatedAt": flow.updated_at,
    }


def bare_flow(flow: Flow) -> dict[str, Any]:
    """Scalar-only shape used when a flow's related rows cannot be assembled."""
    return {
        **hydrate_flow_scalars(flow),
        "columns": [],
        "nodes": [],
        "edges": [],
        "items": [],
    }


def hydrate_flow(
    flow: Flow,
    nodes: Sequence[FlowNode],
    edges: Sequence[FlowEdge],
    items: Sequence[FlowItem],
) -> dict[str, Any]:
    return {
        **hydrate_flow_scalars(flow),
        "columns": parse_payload(
            flow.columns, list, [], what=f"columns of flow {flow.id}"
        ),
        "nodes": [hydrate_node(n) for n in nodes],
        "edges": [hydrate_edge(e) for e in edges],
        "items": [hydrate_item(i) for i in items],
    }


async def load_flow(session: AsyncSession, flow: Flow) -> dict[str, Any]:
    nodes = await list_flow_nodes(session, flow.id)
    edges = await list_flow_edges(session, flow.id)
    items = await list_flow_items(session, flow.id)
    return hydrate_flow(flow, nodes, edges, items)


async def load_flow_safely(session: AsyncSession, flow: Flow) -> dict[str, Any]:
    """Like ``load_flow`` but degrades to ``bare_flow`` instead of raising.

    Each flow is read under its own savepoint so that a failed query does not
    poison the session for the rest of a listing.
    """
    try:
        async with session.begin_nested():
            return await load_flow(session, flow)
    except Exception:
        logger.exception(f"Error processing flow {flow.id}, returning bare flow")
        return bare_flow(flow)
