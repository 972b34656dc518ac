"""
Create symbol_master and job_status tables.

Revision ID: 0001_create_symbol_master
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "0001_create_symbol_master"
down_revision = None
branch_labels = None
depends_on = None


job_outcome = sa.Enum("success", "failed", name="job_outcome")


def upgrade() -> None:
    op.create_table(
        "symbol_master",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("symbol", sa.String(length=32), nullable=False),
        sa.Column("exchange", sa.String(length=32), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("sector", sa.String(length=128), nullable=True),
        sa.Column("industry", sa.String(length=128), nullable=True),
        sa.Column("currency", sa.String(length=8), nullable=True),
        sa.Column("country", sa.String(length=64), nullable=True),
        sa.Column("ipo_date", sa.Date(), nullable=True),
        sa.Column("market_cap", sa.BigInteger(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("data_source", sa.String(length=32), nullable=False, server_default="Finnhub"),
        sa.Column(
            "last_updated",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint("market_cap IS NULL OR market_cap >= 0", name="ck_symbol_master_market_cap"),
    )
    op.create_index("ix_symbol_master_symbol", "symbol_master", ["symbol"], unique=True)
    op.create_index("ix_symbol_master_is_active", "symbol_master", ["is_active"])

    op.create_table(
        "job_status",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("job_name", sa.String(length=64), nullable=False),
        sa.Column("last_run", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", job_outcome, nullable=False),
        sa.Column("details", sa.Text(), nullable=False, server_default=""),
        sa.UniqueConstraint("job_name", "last_run", name="uq_job_status_job_run"),
    )
    op.create_index("ix_job_status_job_name", "job_status", ["job_name"])


def downgrade() -> None:
    op.drop_index("ix_job_status_job_name", table_name="job_status")
    op.drop_table("job_status")
    job_outcome.drop(op.get_bind(), checkfirst=True)
    op.drop_index("ix_symbol_master_is_active", table_name="symbol_master")
    op.drop_index("ix_symbol_master_symbol", table_name="symbol_master")
    op.drop_table("symbol_master")
