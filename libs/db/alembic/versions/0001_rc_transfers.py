# ruff: noqa: I001
"""Transfer-log mirror table.

Revision ID: 0001_rc_transfers
Revises: None
Create Date: 2026-01-12
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_rc_transfers"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "rc_transfers",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("trx_id", sa.String(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=False), nullable=False),
        sa.Column("from_account", sa.String(), nullable=False),
        sa.Column("to_account", sa.String(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 3), nullable=False),
        sa.Column("currency", sa.String(length=4), nullable=False),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.CheckConstraint("currency in ('HBD','HIVE')", name="ck_rc_transfers_currency"),
        sa.CheckConstraint("amount >= 0", name="ck_rc_transfers_amount_nonneg"),
        sa.UniqueConstraint("trx_id", name="uq_rc_transfers_trx_id"),
    )
    op.create_index("ix_rc_transfers_from_ts", "rc_transfers", ["from_account", "timestamp"])
    op.create_index("ix_rc_transfers_to_ts", "rc_transfers", ["to_account", "timestamp"])


def downgrade() -> None:
    op.drop_index("ix_rc_transfers_to_ts", table_name="rc_transfers")
    op.drop_index("ix_rc_transfers_from_ts", table_name="rc_transfers")
    op.drop_table("rc_transfers")
