"""flows, graph rows, items and groups

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _json() -> sa.types.TypeEngine:
    return sa.JSON(none_as_null=True).with_variant(
        postgresql.JSONB(astext_type=sa.Text(), none_as_null=True), "postgresql"
    )


def _timestamps(*, updated: bool = False) -> list[sa.Column]:
    cols = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        )
    ]
    if updated:
        cols.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.func.now(),
            )
        )
    return cols


def upgrade() -> None:
    op.create_table(
        "flows",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("planner_team_id", sa.String(length=255), nullable=True),
        sa.Column("planner_channel_id", sa.String(length=255), nullable=True),
        sa.Column("planner_plan_id", sa.String(length=255), nullable=True),
        sa.Column("planner_bucket_id", sa.String(length=255), nullable=True),
        sa.Column("columns", _json(), nullable=True),
        sa.Column("deadlines", _json(), nullable=True),
        *_timestamps(updated=True),
    )
    op.create_index("ix_flows_created_at", "flows", ["created_at"])

    op.create_table(
        "flow_nodes",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("flow_id", sa.String(length=36), nullable=False),
        sa.Column("node_id", sa.String(length=255), nullable=False),
        sa.Column("node_type", sa.String(length=64), nullable=False),
        sa.Column("position_x", sa.Float(), nullable=False),
        sa.Column("position_y", sa.Float(), nullable=False),
        sa.Column("data", _json(), nullable=True),
        sa.ForeignKeyConstraint(["flow_id"], ["flows.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("flow_id", "node_id", name="uq_flow_nodes_flow_node"),
    )
    op.create_index("ix_flow_nodes_flow_id", "flow_nodes", ["flow_id"])
    op.create_index(
        "ix_flow_nodes_flow_type", "flow_nodes", ["flow_id", "node_type"]
    )

    op.create_table(
        "flow_edges",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("flow_id", sa.String(length=36), nullable=False),
        sa.Column("edge_id", sa.String(length=255), nullable=False),
        sa.Column("source", sa.String(length=255), nullable=False),
        sa.Column("target", sa.String(length=255), nullable=False),
        sa.Column("label", sa.Text(), nullable=True),
        sa.Column("data", _json(), nullable=True),
        sa.ForeignKeyConstraint(["flow_id"], ["flows.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("flow_id", "edge_id", name="uq_flow_edges_flow_edge"),
    )
    op.create_index("ix_flow_edges_flow_id", "flow_edges", ["flow_id"])

    op.create_table(
        "flow_items",
        sa.Column("id", sa.String(length=255), primary_key=True),
        sa.Column("flow_id", sa.String(length=36), nullable=False),
        sa.Column("data", _json(), nullable=True),
        sa.Column("current_node_id", sa.String(length=255), nullable=True),
        sa.Column(
            "status",
            sa.String(length=64),
            nullable=False,
            server_default="active",
        ),
        sa.Column("history", _json(), nullable=True),
        sa.Column("path_taken", _json(), nullable=True),
        sa.Column("parallel_paths", _json(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["flow_id"], ["flows.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_flow_items_flow_id", "flow_items", ["flow_id"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "flow_groups",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("color", sa.String(length=32), nullable=True),
        sa.Column("team_id", sa.String(length=255), nullable=True),
        sa.Column(
            "accept_any", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        *_timestamps(updated=True),
    )

    op.create_table(
        "group_members",
        sa.Column("group_id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), primary_key=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["group_id"], ["flow_groups.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )


def downgrade() -> None:
    op.drop_table("group_members")
    op.drop_table("flow_groups")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    op.drop_table("flow_items")
    op.drop_table("flow_edges")
    op.drop_table("flow_nodes")
    op.drop_index("ix_flows_created_at", table_name="flows")
    op.drop_table("flows")
