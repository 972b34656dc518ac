"""Audit trail of reconciliation passes."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Enum, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from symbol_sync.db.base import Base
from symbol_sync.domain import JobOutcome


class JobStatusEntry(Base):
    __tablename__ = "job_status"
    __table_args__ = (
        UniqueConstraint("job_name", "last_run", name="uq_job_status_job_run"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    job_name: Mapped[str] = mapped_column(String(64), index=True)
    last_run: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    status: Mapped[JobOutcome] = mapped_column(
        Enum(JobOutcome, name="job_outcome", values_callable=lambda e: [m.value for m in e])
    )
    details: Mapped[str] = mapped_column(Text, default="")


__all__ = ["JobStatusEntry"]
