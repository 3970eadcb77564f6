"""initial queue and token schema

Revision ID: 5c1e9a7d2b40
Revises:
Create Date: 2026-10-19 09:12:44.318201

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1e9a7d2b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_ACTIVE_STATUS_PREDICATE = sa.text("status IN ('waiting', 'served')")


def upgrade() -> None:
    """Create users, queues and tokens."""
    op.create_table(
        "app_user",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("display_name", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "queue",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("location", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("next_sequence", sa.Integer(), nullable=False),
        sa.Column("operator_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["operator_id"], ["app_user.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", "location", name="uq_queue_name_location"),
    )
    op.create_index("ix_queue_is_active", "queue", ["is_active"])
    op.create_table(
        "token",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("queue_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["queue_id"], ["queue.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["app_user.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("queue_id", "seq", name="uq_token_queue_seq"),
    )
    op.create_index(
        "uq_token_active_owner",
        "token",
        ["user_id"],
        unique=True,
        sqlite_where=_ACTIVE_STATUS_PREDICATE,
        postgresql_where=_ACTIVE_STATUS_PREDICATE,
    )
    op.create_index("ix_token_queue_status_seq", "token", ["queue_id", "status", "seq"])


def downgrade() -> None:
    """Drop tokens, queues and users."""
    op.drop_index("ix_token_queue_status_seq", table_name="token")
    op.drop_index("uq_token_active_owner", table_name="token")
    op.drop_table("token")
    op.drop_index("ix_queue_is_active", table_name="queue")
    op.drop_table("queue")
    op.drop_table("app_user")
