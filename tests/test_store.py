"""Catalog store tests against a SQLite database."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from symbol_sync.domain import JobOutcome, JobRun, SymbolRecord, UpsertOutcome
from symbol_sync.models import SymbolMaster
from symbol_sync.sync.store import CatalogStore, StoreError


async def _row(factory, symbol: str) -> SymbolMaster:
    async with factory() as session:
        return (await session.scalars(select(SymbolMaster).where(SymbolMaster.symbol == symbol))).one()


def _apple(**overrides) -> SymbolRecord:
    values = {
        "symbol": "AAPL",
        "exchange": "XNAS",
        "name": "Apple Inc",
        "sector": "Technology",
        "industry": "Technology",
        "currency": "USD",
        "country": "US",
        "ipo_date": date(1980, 12, 12),
        "market_cap": 2_500_000_000_000,
    }
    values.update(overrides)
    return SymbolRecord(**values)


@pytest.mark.asyncio
async def test_upsert_reports_insert_refresh_and_reactivation(catalog_factory):
    factory = await catalog_factory()
    store = CatalogStore(factory)

    assert await store.upsert(_apple()) is UpsertOutcome.INSERTED
    assert await store.upsert(_apple(name="Apple Inc.")) is UpsertOutcome.REFRESHED
    assert await store.mark_inactive(["AAPL"]) == 1
    assert await store.upsert(_apple()) is UpsertOutcome.REACTIVATED

    row = await _row(factory, "AAPL")
    assert row.is_active is True
    assert row.name == "Apple Inc"
    assert row.market_cap == 2_500_000_000_000
    assert row.data_source == "Finnhub"


@pytest.mark.asyncio
async def test_last_updated_increases_on_every_write(catalog_factory):
    factory = await catalog_factory()
    store = CatalogStore(factory)

    stamps = []
    for _ in range(3):
        await store.upsert(_apple())
        stamps.append((await _row(factory, "AAPL")).last_updated)

    assert stamps[0] < stamps[1] < stamps[2]


@pytest.mark.asyncio
async def test_upsert_without_refresh_keeps_existing_metadata(catalog_factory):
    factory = await catalog_factory()
    store = CatalogStore(factory)
    await store.upsert(_apple())

    outcome = await store.upsert(SymbolRecord("AAPL", exchange="XNYS"), refresh_metadata=False)

    row = await _row(factory, "AAPL")
    assert outcome is UpsertOutcome.REFRESHED
    assert row.exchange == "XNYS"
    assert row.name == "Apple Inc"
    assert row.ipo_date == date(1980, 12, 12)


@pytest.mark.asyncio
async def test_bare_upsert_with_refresh_clears_metadata(catalog_factory):
    factory = await catalog_factory()
    store = CatalogStore(factory)
    await store.upsert(_apple())

    await store.upsert(SymbolRecord("AAPL", exchange="XNAS"))

    row = await _row(factory, "AAPL")
    assert row.name is None
    assert row.market_cap is None


@pytest.mark.asyncio
async def test_mark_inactive_keeps_rows_and_skips_inactive(catalog_factory):
    factory = await catalog_factory()
    store = CatalogStore(factory)
    for symbol in ("AAPL", "MSFT", "XYZ"):
        await store.upsert(SymbolRecord(symbol, exchange="XNAS"))

    assert await store.mark_inactive(["XYZ", "MSFT"]) == 2
    assert await store.mark_inactive(["XYZ"]) == 0
    assert await store.mark_inactive([]) == 0

    assert await store.load_active_symbols() == {"AAPL"}
    assert await store.count_active() == 1
    async with factory() as session:
        total = (await session.execute(select(func.count()).select_from(SymbolMaster))).scalar_one()
    assert total == 3


@pytest.mark.asyncio
async def test_job_runs_are_listed_newest_first(catalog_factory):
    factory = await catalog_factory()
    store = CatalogStore(factory)
    start = datetime(2024, 1, 2, 3, 0, tzinfo=timezone.utc)

    await store.record_job_run(JobRun("symbol_sync", start, JobOutcome.SUCCESS, "observed=2"))
    await store.record_job_run(
        JobRun("symbol_sync", start + timedelta(hours=1), JobOutcome.FAILED, "roster fetch failed")
    )
    await store.record_job_run(JobRun("other_job", start + timedelta(hours=2), JobOutcome.SUCCESS, ""))

    runs = await store.recent_job_runs("symbol_sync")
    assert [run.status for run in runs] == [JobOutcome.FAILED, JobOutcome.SUCCESS]
    assert runs[0].details == "roster fetch failed"

    assert len(await store.recent_job_runs(limit=2)) == 2


@pytest.mark.asyncio
async def test_database_failures_surface_as_store_errors(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}", poolclass=NullPool)
    store = CatalogStore(async_sessionmaker(engine, expire_on_commit=False))

    with pytest.raises(StoreError):
        await store.load_active_symbols()
    with pytest.raises(StoreError):
        await store.upsert(SymbolRecord("AAPL"))
    with pytest.raises(StoreError):
        await store.record_job_run(
            JobRun("symbol_sync", datetime.now(timezone.utc), JobOutcome.SUCCESS, "")
        )


def test_record_rejects_negative_market_cap():
    with pytest.raises(ValueError):
        SymbolRecord("AAPL", market_cap=-1)


@pytest.mark.asyncio
async def test_mark_inactive_stamps_after_a_future_last_updated(catalog_factory):
    factory = await catalog_factory()
    store = CatalogStore(factory)
    await store.upsert(SymbolRecord("XYZ", exchange="XNAS"))
    ahead = datetime.now(timezone.utc) + timedelta(days=1)
    async with factory() as session, session.begin():
        await session.execute(
            update(SymbolMaster).where(SymbolMaster.symbol == "XYZ").values(last_updated=ahead)
        )

    assert await store.mark_inactive(["XYZ"]) == 1

    row = await _row(factory, "XYZ")
    stamp = row.last_updated.replace(tzinfo=None)
    assert row.is_active is False
    assert stamp > ahead.replace(tzinfo=None)
