from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Bridge: rc_transfers
# ---------------------------


class RcTransfer(Base):
    """One on-chain transfer mirrored from the chain's SQL bridge.

    Rows are append-only; ``trx_id`` is the upstream identifier. Amounts keep
    the chain's three-decimal precision.
    """

    __tablename__ = "rc_transfers"

    # BIGINT on Postgres, INTEGER (rowid alias) on SQLite for autoincrement.
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    trx_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    from_account: Mapped[str] = mapped_column(String, nullable=False)
    to_account: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 3), nullable=False)
    currency: Mapped[str] = mapped_column(String(4), nullable=False)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )

    __table_args__ = (
        CheckConstraint("currency in ('HBD','HIVE')", name="ck_rc_transfers_currency"),
        CheckConstraint("amount >= 0", name="ck_rc_transfers_amount_nonneg"),
        Index("ix_rc_transfers_from_ts", "from_account", "timestamp"),
        Index("ix_rc_transfers_to_ts", "to_account", "timestamp"),
    )


__all__ = [
    "Base",
    "RcTransfer",
]
