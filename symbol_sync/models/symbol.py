"""Symbol master catalog model."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Date, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from symbol_sync.config import DEFAULT_DATA_SOURCE
from symbol_sync.db.base import Base


class SymbolMaster(Base):
    __tablename__ = "symbol_master"
    __table_args__ = (
        CheckConstraint("market_cap IS NULL OR market_cap >= 0", name="ck_symbol_master_market_cap"),
        Index("ix_symbol_master_is_active", "is_active"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    symbol: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    exchange: Mapped[str | None] = mapped_column(String(32), nullable=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sector: Mapped[str | None] = mapped_column(String(128), nullable=True)
    industry: Mapped[str | None] = mapped_column(String(128), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    country: Mapped[str | None] = mapped_column(String(64), nullable=True)
    ipo_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    market_cap: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    data_source: Mapped[str] = mapped_column(String(32), default=DEFAULT_DATA_SOURCE)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True))


__all__ = ["SymbolMaster"]
