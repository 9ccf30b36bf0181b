from __future__ import annotations

import argparse
import asyncio

from flowstore.core.exceptions import FlowOperationError
from flowstore.db.session import async_session_maker, engine
from flowstore.services.flow_reconciler import create_flow


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seed a sample approval flow")
    p.add_argument("--name", required=True)
    p.add_argument("--description", default="")
    p.add_argument("--deadline-field", default="")
    p.add_argument("--deadline-days", default="")
    return p.parse_args()


def _sample_graph() -> tuple[list[dict], list[dict]]:
    nodes = [
        {
            "id": "initial",
            "type": "initial",
            "position": {"x": 250, "y": 50},
            "data": {"label": "Start", "inputs": [], "deletable": False},
        },
        {
            "id": "review",
            "type": "task",
            "position": {"x": 250, "y": 200},
            "data": {"label": "Review"},
        },
        {
            "id": "done",
            "type": "final",
            "position": {"x": 250, "y": 350},
            "data": {"label": "Done"},
        },
    ]
    edges = [
        {"id": "e-initial-review", "source": "initial", "target": "review"},
        {
            "id": "e-review-done",
            "source": "review",
            "target": "done",
            "label": "approved",
            "type": "conditional",
        },
    ]
    return nodes, edges


async def main() -> None:
    args = _parse_args()
    nodes, edges = _sample_graph()

    deadlines = None
    if args.deadline_field.strip() or args.deadline_days.strip():
        deadlines = {"field": args.deadline_field, "days": args.deadline_days}

    try:
        async with async_session_maker() as session:
            flow_id = await create_flow(
                session,
                name=args.name.strip(),
                description=args.description.strip() or None,
                nodes=nodes,
                edges=edges,
                deadlines=deadlines,
            )
    except FlowOperationError as e:
        raise SystemExit(f"Could not seed flow: {e.message}")
    finally:
        await engine.dispose()

    print(f"Seeded flow {flow_id}")


if __name__ == "__main__":
    asyncio.run(main())
