"""create the canonical schema

Revision ID: 0001_canonical_schema
Revises:
Create Date: 2025-05-02 09:12:44.118204

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001_canonical_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "project",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "execution_status",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_table(
        "version",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=True),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["project_id"], ["project.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_id", "name", name="uq_version_project_name"),
    )
    op.create_table(
        "item",
        sa.Column("id", sa.String(100), nullable=False),
        sa.Column("name", sa.String(1000), nullable=True),
        sa.Column("project_id", sa.Integer(), nullable=True),
        sa.Column("type", sa.String(255), nullable=True),
        sa.Column("status", sa.String(255), nullable=True),
        sa.Column("priority", sa.String(255), nullable=True),
        sa.Column("created", sa.DateTime(), nullable=True),
        sa.Column("updated", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["project_id"], ["project.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_item_project", "item", ["project_id"], unique=False)
    op.create_table(
        "item_version",
        sa.Column("item_id", sa.String(100), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["item_id"], ["item.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["version_id"], ["version.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("item_id", "version_id"),
    )
    op.create_index("idx_item_version_version", "item_version", ["version_id"], unique=False)
    op.create_table(
        "item_metadata",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("item_id", sa.String(100), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("value", sa.String(100), nullable=True),
        sa.ForeignKeyConstraint(["item_id"], ["item.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_item_metadata_item", "item_metadata", ["item_id"], unique=False)
    op.create_table(
        "cycle",
        sa.Column("id", sa.String(100), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(1000), nullable=True),
        sa.Column("start_date", sa.DateTime(), nullable=True),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["version_id"], ["version.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_cycle_version", "cycle", ["version_id"], unique=False)
    op.create_table(
        "execution",
        sa.Column("id", sa.String(100), nullable=False),
        sa.Column("item_id", sa.String(100), nullable=True),
        sa.Column("cycle_id", sa.String(100), nullable=True),
        sa.Column("status_id", sa.Integer(), nullable=True),
        sa.Column("executor_id", sa.Integer(), nullable=True),
        sa.Column("created", sa.DateTime(), nullable=True),
        sa.Column("executed", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["item_id"], ["item.id"]),
        sa.ForeignKeyConstraint(["cycle_id"], ["cycle.id"]),
        sa.ForeignKeyConstraint(["status_id"], ["execution_status.id"]),
        sa.ForeignKeyConstraint(["executor_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_execution_item", "execution", ["item_id"], unique=False)
    op.create_index("idx_execution_cycle", "execution", ["cycle_id"], unique=False)
    op.create_table(
        "last_sync",
        sa.Column("sync_key", sa.String(100), nullable=False),
        sa.Column("project_name", sa.String(255), nullable=False),
        sa.Column("scope", sa.String(255), nullable=False),
        sa.Column("last_sync", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("sync_key", "project_name", "scope"),
    )


def downgrade() -> None:
    op.drop_table("last_sync")
    op.drop_index("idx_execution_cycle", table_name="execution")
    op.drop_index("idx_execution_item", table_name="execution")
    op.drop_table("execution")
    op.drop_index("idx_cycle_version", table_name="cycle")
    op.drop_table("cycle")
    op.drop_index("idx_item_metadata_item", table_name="item_metadata")
    op.drop_table("item_metadata")
    op.drop_index("idx_item_version_version", table_name="item_version")
    op.drop_table("item_version")
    op.drop_index("idx_item_project", table_name="item")
    op.drop_table("item")
    op.drop_table("version")
    op.drop_table("execution_status")
    op.drop_table("user")
    op.drop_table("project")
