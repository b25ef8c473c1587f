"""Create stock ratings table.

Revision ID: 0001_stock_ratings
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "0001_stock_ratings"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "stock_ratings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("ticker", sa.String(length=10), nullable=False),
        sa.Column("company", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("brokerage", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("action", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("rating_from", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("rating_to", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("target_from", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("target_to", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint(
            "ticker", "brokerage", "action", "rating_from", "rating_to", "time", name="uq_stock_ratings_event"
        ),
    )
    op.create_index("ix_stock_ratings_ticker", "stock_ratings", ["ticker"])
    op.create_index("ix_stock_ratings_time", "stock_ratings", ["time"])
    op.create_index("ix_stock_ratings_created_id", "stock_ratings", ["created_at", "id"])


def downgrade() -> None:
    op.drop_index("ix_stock_ratings_created_id", table_name="stock_ratings")
    op.drop_index("ix_stock_ratings_time", table_name="stock_ratings")
    op.drop_index("ix_stock_ratings_ticker", table_name="stock_ratings")
    op.drop_table("stock_ratings")
