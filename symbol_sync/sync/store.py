"""Transactional access to the symbol master and job status tables."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from symbol_sync.domain import JobRun, SymbolRecord, UpsertOutcome
from symbol_sync.models import JobStatusEntry, SymbolMaster

logger = logging.getLogger(__name__)

_METADATA_COLUMNS = ("name", "sector", "industry", "currency", "country", "ipo_date", "market_cap")
_CONTROL_COLUMNS = ("exchange", "is_active", "data_source", "last_updated")
_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


class StoreError(RuntimeError):
    """Raised when a catalog database operation fails."""


class CatalogStore:
    """Catalog operations, each running in its own transaction.

    Every SQLAlchemy failure is rolled back and surfaced as ``StoreError``.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def load_active_symbols(self) -> set[str]:
        stmt = select(SymbolMaster.symbol).where(SymbolMaster.is_active.is_(True))
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.scalars(stmt)
                return set(result.all())
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to load active symbols: {exc}") from exc

    async def upsert(self, record: SymbolRecord, *, refresh_metadata: bool = True) -> UpsertOutcome:
        """Insert or update ``record`` by symbol and force it active.

        With ``refresh_metadata=False`` an existing row keeps its company
        metadata and only the exchange, active flag, source and timestamp are
        written.
        """

        lookup = select(SymbolMaster.is_active, SymbolMaster.last_updated).where(
            SymbolMaster.symbol == record.symbol
        )
        try:
            async with self._session_factory() as session, session.begin():
                existing = (await session.execute(lookup)).one_or_none()
                values = _row_values(record, _next_stamp(existing.last_updated if existing else None))
                stmt = _insert_for(session)(SymbolMaster).values(**values)
                columns = _CONTROL_COLUMNS + (_METADATA_COLUMNS if refresh_metadata else ())
                stmt = stmt.on_conflict_do_update(
                    index_elements=["symbol"],
                    set_={column: stmt.excluded[column] for column in columns},
                )
                await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to upsert {record.symbol}: {exc}") from exc

        if existing is None:
            return UpsertOutcome.INSERTED
        if not existing.is_active:
            return UpsertOutcome.REACTIVATED
        return UpsertOutcome.REFRESHED

    async def mark_inactive(self, symbols: Iterable[str]) -> int:
        """Flag the given symbols inactive; rows already inactive are left alone.

        The batch shares one timestamp, later than every ``last_updated`` it
        replaces.
        """

        batch = sorted(set(symbols))
        if not batch:
            return 0
        targets = (SymbolMaster.symbol.in_(batch), SymbolMaster.is_active.is_(True))
        try:
            async with self._session_factory() as session, session.begin():
                latest = (
                    await session.execute(select(func.max(SymbolMaster.last_updated)).where(*targets))
                ).scalar_one()
                stmt = (
                    update(SymbolMaster)
                    .where(*targets)
                    .values(is_active=False, last_updated=_next_stamp(latest))
                    .execution_options(synchronize_session=False)
                )
                result = await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to mark {len(batch)} symbols inactive: {exc}") from exc
        return result.rowcount or 0

    async def count_active(self) -> int:
        stmt = select(func.count()).select_from(SymbolMaster).where(SymbolMaster.is_active.is_(True))
        try:
            async with self._session_factory() as session:
                return int((await session.execute(stmt)).scalar_one())
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to count active symbols: {exc}") from exc

    async def record_job_run(self, run: JobRun) -> None:
        entry = JobStatusEntry(
            job_name=run.job_name,
            last_run=run.last_run,
            status=run.status,
            details=run.details,
        )
        try:
            async with self._session_factory() as session, session.begin():
                session.add(entry)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to record {run.job_name} run: {exc}") from exc

    async def recent_job_runs(self, job_name: str | None = None, limit: int = 20) -> list[JobRun]:
        stmt = select(JobStatusEntry).order_by(JobStatusEntry.last_run.desc()).limit(limit)
        if job_name:
            stmt = stmt.where(JobStatusEntry.job_name == job_name)
        try:
            async with self._session_factory() as session:
                rows = (await session.scalars(stmt)).all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read job status: {exc}") from exc
        return [
            JobRun(job_name=row.job_name, last_run=row.last_run, status=row.status, details=row.details)
            for row in rows
        ]


def _insert_for(session: AsyncSession) -> Any:
    dialect = session.get_bind().dialect.name
    try:
        return _INSERTS[dialect]
    except KeyError:
        raise StoreError(f"Upsert is not supported on the {dialect} dialect") from None


def _row_values(record: SymbolRecord, stamp: datetime) -> dict[str, Any]:
    return {
        "symbol": record.symbol,
        "exchange": record.exchange,
        "name": record.name,
        "sector": record.sector,
        "industry": record.industry,
        "currency": record.currency,
        "country": record.country,
        "ipo_date": record.ipo_date,
        "market_cap": record.market_cap,
        "is_active": True,
        "data_source": record.data_source,
        "last_updated": stamp,
    }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _next_stamp(previous: datetime | None) -> datetime:
    """Current time, nudged forward so a row's timestamp always increases."""

    now = _utcnow()
    if previous is None:
        return now
    if previous.tzinfo is None:
        # SQLite hands timestamps back naive
        previous = previous.replace(tzinfo=timezone.utc)
    return max(now, previous + timedelta(microseconds=1))


__all__ = ["CatalogStore", "StoreError"]
