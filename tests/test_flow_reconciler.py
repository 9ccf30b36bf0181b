import copy
import datetime as dt
import json

import pytest
from sqlalchemy import func, select

from flowstore.core.exceptions import (
    FlowNotFoundError,
    FlowStorageError,
    FlowValidationError,
)
from flowstore.models.flow import Flow, FlowEdge, FlowItem, FlowNode
from flowstore.services.flow_reconciler import (
    create_flow,
    edge_payload,
    normalize_created_at,
    reconcile_ids,
    update_flow,
)
from flowstore.services.flow_service import get_flow_view, remove_flow
from tests.factories import copy_of_graph, make_edge, make_node


# ============================================================================
# HELPERS
# ============================================================================


async def _create(session_maker, graph: dict) -> str:
    async with session_maker() as session:
        return await create_flow(
            session,
            name=graph["name"],
            description=graph.get("description"),
            columns=graph.get("columns"),
            nodes=graph.get("nodes"),
            edges=graph.get("edges"),
            items=graph.get("items"),
            deadlines=graph.get("deadlines"),
        )


async def _update(session_maker, flow_id: str, graph: dict) -> None:
    async with session_maker() as session:
        await update_flow(
            session,
            flow_id,
            name=graph["name"],
            description=graph.get("description"),
            columns=graph.get("columns", []),
            nodes=graph.get("nodes"),
            edges=graph.get("edges", []),
            items=graph.get("items", []),
            planner_team_id=graph.get("plannerTeamId"),
            deadlines=graph.get("deadlines"),
        )


async def _view(session_maker, flow_id: str) -> dict:
    async with session_maker() as session:
        return await get_flow_view(session, flow_id)


async def _rows(session_maker, model, flow_id: str) -> list[dict]:
    async with session_maker() as session:
        result = await session.execute(select(model).where(model.flow_id == flow_id))
        return [
            {c.key: getattr(r, c.key) for c in model.__table__.columns}
            for r in result.scalars().all()
        ]


def _frozen(rows: list[dict]) -> list[str]:
    """Rows as sorted JSON strings so they can be compared as sets."""
    return sorted(json.dumps(r, sort_keys=True, default=str) for r in rows)


async def _count(session_maker, model, flow_id: str) -> int:
    async with session_maker() as session:
        result = await session.execute(
            select(func.count()).select_from(model).where(model.flow_id == flow_id)
        )
        return result.scalar_one()


async def _snapshot(session_maker, flow_id: str) -> dict:
    async with session_maker() as session:
        flow = await session.get(Flow, flow_id)
        meta = (flow.name, flow.description, flow.columns, flow.deadlines, flow.updated_at)
    return {
        "flow": meta,
        "nodes": _frozen(await _rows(session_maker, FlowNode, flow_id)),
        "edges": _frozen(await _rows(session_maker, FlowEdge, flow_id)),
        "items": _frozen(await _rows(session_maker, FlowItem, flow_id)),
    }


# ============================================================================
# PURE HELPERS
# ============================================================================


def test_reconcile_ids_splits_three_ways():
    diff = reconcile_ids({"a", "b", "c"}, ["b", "c", "d"])
    assert diff.to_delete == {"a"}
    assert diff.to_update == {"b", "c"}
    assert diff.to_insert == {"d"}


def test_edge_payload_folds_non_default_type():
    assert edge_payload({"type": "conditional", "data": {"note": "x"}}) == {
        "note": "x",
        "type": "conditional",
    }
    assert edge_payload({"type": "default", "data": {"note": "x"}}) == {"note": "x"}
    assert edge_payload({"data": None}) == {}


def test_normalize_created_at():
    now = dt.datetime(2025, 1, 1, 12, 0, 0, 999, tzinfo=dt.timezone.utc)
    assert normalize_created_at("2024-03-05T10:20:30.456Z", now=now) == dt.datetime(
        2024, 3, 5, 10, 20, 30, tzinfo=dt.timezone.utc
    )
    assert normalize_created_at("2024-03-05T12:20:30+02:00", now=now) == dt.datetime(
        2024, 3, 5, 10, 20, 30, tzinfo=dt.timezone.utc
    )
    assert normalize_created_at(1709634030456, now=now) == dt.datetime(
        2024, 3, 5, 10, 20, 30, tzinfo=dt.timezone.utc
    )
    assert normalize_created_at("yesterday", now=now) == now.replace(microsecond=0)
    assert normalize_created_at(None, now=now) == now.replace(microsecond=0)


# ============================================================================
# CREATE
# ============================================================================


async def test_create_persists_whole_graph(session_maker, sample_graph):
    flow_id = await _create(session_maker, sample_graph)
    view = await _view(session_maker, flow_id)

    assert view["name"] == "Purchase approval"
    assert view["columns"] == [{"key": "amount", "label": "Amount"}]
    assert view["deadlines"] == {"field": "due", "days": 5}
    assert {n["id"] for n in view["nodes"]} == {"initial", "review", "done"}

    edges = {e["id"]: e for e in view["edges"]}
    assert edges["e2"]["type"] == "conditional"
    assert edges["e2"]["label"] == "approved"
    assert "type" not in edges["e1"]

    [item] = view["items"]
    assert item["id"] == "item-1"
    assert item["currentNodeId"] == "review"
    assert item["pathTaken"] == ["initial"]
    assert item["createdAt"].replace(tzinfo=None) == dt.datetime(2024, 3, 5, 10, 20, 30)


async def test_create_without_nodes_seeds_start_node(session_maker):
    flow_id = await _create(session_maker, {"name": "Empty"})
    view = await _view(session_maker, flow_id)

    assert view["nodes"] == [
        {
            "id": "initial",
            "type": "initial",
            "position": {"x": 250.0, "y": 50.0},
            "data": {"label": "Start", "inputs": [], "deletable": False},
        }
    ]
    assert view["deadlines"] is None


async def test_create_without_initial_node_adds_one(session_maker):
    flow_id = await _create(
        session_maker, {"name": "No start", "nodes": [make_node("a"), make_node("b")]}
    )
    view = await _view(session_maker, flow_id)

    initial = [n for n in view["nodes"] if n["type"] == "initial"]
    assert len(initial) == 1
    assert initial[0]["data"] == {"label": "Start", "inputs": [], "deletable": False}
    assert len(view["nodes"]) == 3


async def test_create_edge_type_round_trip(session_maker):
    graph = {
        "name": "Edges",
        "nodes": [make_node("initial", "initial"), make_node("a")],
        "edges": [
            make_edge("typed", "initial", "a", data={"type": "conditional", "note": "x"}),
            make_edge("plain", "a", "initial", data={"type": "default"}),
        ],
    }
    flow_id = await _create(session_maker, graph)
    edges = {e["id"]: e for e in (await _view(session_maker, flow_id))["edges"]}

    assert edges["typed"]["type"] == "conditional"
    assert edges["typed"]["data"] == {"note": "x"}
    assert "type" not in edges["plain"]
    assert edges["plain"]["data"] == {"type": "default"}


async def test_create_generates_missing_item_ids_and_defaults(session_maker):
    flow_id = await _create(
        session_maker, {"name": "Items", "items": [{"data": {"n": 1}}]}
    )
    [item] = (await _view(session_maker, flow_id))["items"]

    assert item["id"]
    assert item["status"] == "active"
    assert item["history"] == []
    assert item["parallelPaths"] == {}
    assert item["createdAt"] is not None


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"name": ""}, "Flow name is required"),
        ({"name": "   "}, "Flow name is required"),
        ({"name": 42}, "Flow name is required"),
        ({"nodes": {"id": "x"}}, "Nodes must be an array"),
        ({"edges": "e1"}, "Edges must be an array"),
        ({"items": {}}, "Items must be an array"),
        ({"columns": "a,b"}, "Columns must be an array"),
        ({"description": 5}, "Description must be a string"),
        ({"nodes": [{"id": "x", "type": "initial"}]}, "Invalid node data"),
    ],
)
async def test_create_rejects_malformed_input(session_maker, sample_graph, overrides, message):
    graph = {**sample_graph, **overrides}
    with pytest.raises(FlowValidationError, match=message):
        await _create(session_maker, graph)

    async with session_maker() as session:
        assert (await session.execute(select(func.count()).select_from(Flow))).scalar_one() == 0


async def test_create_rolls_back_on_storage_failure(session_maker, sample_graph):
    graph = copy.deepcopy(sample_graph)
    graph["items"].append({**graph["items"][0]})  # duplicate primary key

    with pytest.raises(FlowStorageError):
        await _create(session_maker, graph)

    async with session_maker() as session:
        for model in (Flow, FlowNode, FlowEdge, FlowItem):
            count = await session.execute(select(func.count()).select_from(model))
            assert count.scalar_one() == 0


async def test_create_does_not_check_edge_endpoints(session_maker):
    graph = {
        "name": "Loose",
        "nodes": [make_node("initial", "initial")],
        "edges": [make_edge("e", "initial", "ghost")],
    }
    flow_id = await _create(session_maker, graph)
    assert await _count(session_maker, FlowEdge, flow_id) == 1


# ============================================================================
# UPDATE
# ============================================================================


async def test_update_with_current_state_is_idempotent(session_maker, sample_graph):
    flow_id = await _create(session_maker, sample_graph)
    view = await _view(session_maker, flow_id)
    before = await _snapshot(session_maker, flow_id)

    await _update(session_maker, flow_id, view)
    after = await _snapshot(session_maker, flow_id)

    assert after["nodes"] == before["nodes"]
    assert after["edges"] == before["edges"]
    assert after["items"] == before["items"]


async def test_update_touches_only_changed_nodes(session_maker, sample_graph):
    flow_id = await _create(session_maker, sample_graph)
    view = await _view(session_maker, flow_id)
    before = await _snapshot(session_maker, flow_id)

    view["nodes"] = [n for n in view["nodes"] if n["id"] != "done"]
    view["nodes"].append(make_node("archive", "final", 400, 350))
    view["edges"] = [e for e in view["edges"] if e["id"] != "e2"]
    await _update(session_maker, flow_id, view)
    after = await _snapshot(session_maker, flow_id)

    removed = set(before["nodes"]) - set(after["nodes"])
    added = set(after["nodes"]) - set(before["nodes"])
    assert [json.loads(r)["node_id"] for r in removed] == ["done"]
    assert [json.loads(r)["node_id"] for r in added] == ["archive"]
    assert set(before["nodes"]) - removed == set(after["nodes"]) - added

    assert after["items"] == before["items"]
    assert set(after["edges"]) < set(before["edges"])


async def test_update_changes_existing_rows_in_place(session_maker, sample_graph):
    flow_id = await _create(session_maker, sample_graph)
    view = await _view(session_maker, flow_id)
    before = {r["node_id"]: r for r in await _rows(session_maker, FlowNode, flow_id)}

    for node in view["nodes"]:
        if node["id"] == "review":
            node["position"] = {"x": 1.5, "y": 2.5}
            node["data"] = {"label": "Manager review"}
    view["items"][0]["status"] = "done"
    view["items"][0]["createdAt"] = "1999-01-01T00:00:00Z"
    await _update(session_maker, flow_id, view)

    after = {r["node_id"]: r for r in await _rows(session_maker, FlowNode, flow_id)}
    assert after["review"]["id"] == before["review"]["id"]
    assert after["review"]["position_x"] == 1.5
    assert after["review"]["data"] == {"label": "Manager review"}

    [item] = (await _view(session_maker, flow_id))["items"]
    assert item["status"] == "done"
    assert item["createdAt"].replace(tzinfo=None) == dt.datetime(2024, 3, 5, 10, 20, 30)


async def test_update_reconciles_edges_and_items(session_maker, sample_graph):
    flow_id = await _create(session_maker, sample_graph)
    view = await _view(session_maker, flow_id)

    view["edges"] = [
        make_edge("e1", "initial", "done", type="conditional", data={"rule": "skip"}),
        make_edge("e3", "review", "done"),
    ]
    view["items"] = [{"id": "item-2", "data": {"amount": 7}, "createdAt": "2024-06-01T08:00:00.900Z"}]
    view["plannerTeamId"] = "team-9"
    await _update(session_maker, flow_id, view)

    out = await _view(session_maker, flow_id)
    edges = {e["id"]: e for e in out["edges"]}
    assert set(edges) == {"e1", "e3"}
    assert edges["e1"]["target"] == "done"
    assert edges["e1"]["type"] == "conditional"
    assert edges["e1"]["data"] == {"rule": "skip"}
    assert [i["id"] for i in out["items"]] == ["item-2"]
    assert out["items"][0]["createdAt"].replace(tzinfo=None) == dt.datetime(2024, 6, 1, 8, 0, 0)
    assert out["plannerTeamId"] == "team-9"


async def test_update_applies_metadata(session_maker, sample_graph):
    flow_id = await _create(session_maker, sample_graph)
    view = await _view(session_maker, flow_id)

    view.update(name="Renamed", description="new", columns=[], deadlines={"a": -1, "b": 3})
    await _update(session_maker, flow_id, view)

    out = await _view(session_maker, flow_id)
    assert out["name"] == "Renamed"
    assert out["description"] == "new"
    assert out["columns"] == []
    assert out["deadlines"] == {"b": 3}


async def test_update_with_dangling_last_edge_rolls_back(session_maker, sample_graph):
    flow_id = await _create(session_maker, sample_graph)
    view = await _view(session_maker, flow_id)
    before = await _snapshot(session_maker, flow_id)

    view["name"] = "Should not stick"
    view["nodes"].append(make_node("extra"))
    view["items"] = []
    view["edges"].append(make_edge("bad", "review", "nowhere"))

    with pytest.raises(FlowValidationError, match="non-existent nodes"):
        await _update(session_maker, flow_id, view)

    assert await _snapshot(session_maker, flow_id) == before


@pytest.mark.parametrize(
    "mutate, message",
    [
        (lambda g: g.update(nodes=[]), "at least one node"),
        (lambda g: g.update(nodes=[make_node("a")], edges=[]), "initial node"),
        (lambda g: g["nodes"].append({"id": "p", "type": "task", "position": {"x": "1", "y": 2}}), "Invalid node data"),
        (lambda g: g["nodes"].append({"id": "p", "type": "task"}), "Invalid node data"),
        (lambda g: g["nodes"].append(make_node("review")), "Duplicate node id"),
        (lambda g: g["edges"].append({"id": "x", "source": "initial"}), "Invalid edge data"),
        (lambda g: g.update(items=None), "Items must be an array"),
        (lambda g: g.update(name=""), "Flow name is required"),
        (lambda g: g.update(description=["x"]), "Description must be a string"),
        (lambda g: g.update(plannerTeamId=7), "plannerTeamId must be a string"),
    ],
)
async def test_update_validation_failures_leave_flow_untouched(
    session_maker, sample_graph, mutate, message
):
    flow_id = await _create(session_maker, sample_graph)
    view = await _view(session_maker, flow_id)
    before = await _snapshot(session_maker, flow_id)

    mutate(view)
    with pytest.raises(FlowValidationError, match=message):
        await _update(session_maker, flow_id, view)

    assert await _snapshot(session_maker, flow_id) == before


async def test_update_storage_failure_rolls_back(session_maker, sample_graph):
    flow_id = await _create(session_maker, sample_graph)
    other_id = await _create(
        session_maker, {"name": "Other", "items": [{"id": "taken", "data": {}}]}
    )
    view = await _view(session_maker, flow_id)
    before = await _snapshot(session_maker, flow_id)

    view["name"] = "Should not stick"
    view["items"].append({"id": "taken", "data": {}})  # belongs to another flow

    with pytest.raises(FlowStorageError):
        await _update(session_maker, flow_id, view)

    assert await _snapshot(session_maker, flow_id) == before
    assert await _count(session_maker, FlowItem, other_id) == 1


async def test_update_unknown_flow(session_maker, sample_graph):
    with pytest.raises(FlowNotFoundError):
        await _update(session_maker, "missing", sample_graph)


# ============================================================================
# DELETE
# ============================================================================


async def test_delete_cascades_to_graph_rows(session_maker, sample_graph):
    flow_id = await _create(session_maker, sample_graph)
    keep_id = await _create(session_maker, {"name": "Keep"})

    async with session_maker() as session:
        await remove_flow(session, flow_id)

    for model in (FlowNode, FlowEdge, FlowItem):
        assert await _count(session_maker, model, flow_id) == 0
    async with session_maker() as session:
        assert await session.get(Flow, flow_id) is None
    assert await _count(session_maker, FlowNode, keep_id) == 1


async def test_delete_unknown_flow_is_noop(session_maker):
    async with session_maker() as session:
        await remove_flow(session, "missing")


# ============================================================================
# LISTING
# ============================================================================


async def test_listing_degrades_a_broken_flow_to_bare_shape(
    session_maker, sample_graph, monkeypatch
):
    from flowstore.services import flow_hydrator
    from flowstore.services.flow_service import list_flow_views

    broken_id = await _create(session_maker, sample_graph)
    healthy_id = await _create(
        session_maker, copy_of_graph(sample_graph, name="Healthy", item_id="item-2")
    )

    real_list_edges = flow_hydrator.list_flow_edges

    async def _flaky_list_edges(session, flow_id):
        if flow_id == broken_id:
            raise RuntimeError("edge table unavailable")
        return await real_list_edges(session, flow_id)

    monkeypatch.setattr(flow_hydrator, "list_flow_edges", _flaky_list_edges)

    async with session_maker() as session:
        views = {v["id"]: v for v in await list_flow_views(session)}

    assert set(views) == {broken_id, healthy_id}
    broken = views[broken_id]
    assert broken["name"] == "Purchase approval"
    assert broken["nodes"] == broken["edges"] == broken["items"] == []
    assert broken["columns"] == []
    assert len(views[healthy_id]["edges"]) == 2
    assert len(views[healthy_id]["nodes"]) == 3
    assert [i["id"] for i in views[healthy_id]["items"]] == ["item-2"]
