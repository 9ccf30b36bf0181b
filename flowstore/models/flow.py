from __future__ import annotations

import datetime as dt
from typing import Any

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from flowstore.models.base import Base, JSONPayload


class Flow(Base):
    __tablename__ = "flows"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Planner destination (external task board linkage)
    planner_team_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    planner_channel_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    planner_plan_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    planner_bucket_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    columns: Mapped[Any] = mapped_column(JSONPayload, nullable=True)
    deadlines: Mapped[Any] = mapped_column(JSONPayload, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (Index("ix_flows_created_at", "created_at"),)


class FlowNode(Base):
    __tablename__ = "flow_nodes"

    # Surrogate row id; node_id is the client-assigned graph id.
    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    flow_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("flows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    node_id: Mapped[str] = mapped_column(String(255), nullable=False)
    node_type: Mapped[str] = mapped_column(String(64), nullable=False)
    position_x: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    position_y: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    data: Mapped[Any] = mapped_column(JSONPayload, nullable=True)

    __table_args__ = (
        UniqueConstraint("flow_id", "node_id", name="uq_flow_nodes_flow_node"),
        Index("ix_flow_nodes_flow_type", "flow_id", "node_type"),
    )


class FlowEdge(Base):
    __tablename__ = "flow_edges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    flow_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("flows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    edge_id: Mapped[str] = mapped_column(String(255), nullable=False)
    source: Mapped[str] = mapped_column(String(255), nullable=False)
    target: Mapped[str] = mapped_column(String(255), nullable=False)
    label: Mapped[str | None] = mapped_column(Text, nullable=True)
    data: Mapped[Any] = mapped_column(JSONPayload, nullable=True)

    __table_args__ = (
        UniqueConstraint("flow_id", "edge_id", name="uq_flow_edges_flow_edge"),
    )


class FlowItem(Base):
    __tablename__ = "flow_items"

    # Client-assignable, unique across all flows.
    id: Mapped[str] = mapped_column(String(255), primary_key=True)

    flow_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("flows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    data: Mapped[Any] = mapped_column(JSONPayload, nullable=True)
    current_node_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(64), nullable=False, default="active", server_default="active"
    )
    history: Mapped[Any] = mapped_column(JSONPayload, nullable=True)
    path_taken: Mapped[Any] = mapped_column(JSONPayload, nullable=True)
    parallel_paths: Mapped[Any] = mapped_column(JSONPayload, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
