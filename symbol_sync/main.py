"""FastAPI entrypoint for the symbol sync service."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import Annotated, Any

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest
from pydantic import BaseModel

from symbol_sync import __version__
from symbol_sync.config import get_settings
from symbol_sync.core.logging import setup_logging
from symbol_sync.core.telemetry import setup_telemetry
from symbol_sync.db.init import init_database
from symbol_sync.db.session import dispose_engine, get_engine, get_session_factory
from symbol_sync.domain import SyncReport
from symbol_sync.sync.runner import run_symbol_sync
from symbol_sync.sync.store import CatalogStore, StoreError

SyncJob = Callable[[Sequence[str] | None], Awaitable[SyncReport]]

logger = logging.getLogger("symbol_sync")

settings = get_settings()
setup_logging(settings.log_level)
app = FastAPI(title=settings.app_name, version=__version__)
setup_telemetry(settings, app=app, engine=get_engine())

_sync_lock = asyncio.Lock()


class JobRunSchema(BaseModel):
    job_name: str
    last_run: datetime
    status: str
    details: str


def get_catalog_store() -> CatalogStore:
    return CatalogStore(get_session_factory())


def get_sync_job() -> SyncJob:
    async def _job(exchanges: Sequence[str] | None) -> SyncReport:
        return await run_symbol_sync(get_settings(), exchanges=exchanges)

    return _job


def _report_payload(report: SyncReport) -> dict[str, Any]:
    return {
        "status": report.status.value,
        "exchanges": report.exchanges,
        "observed": report.observed,
        "new": report.new,
        "reactivated": report.reactivated,
        "refreshed": report.refreshed,
        "delisted": report.delisted,
        "active": report.active,
        "api_calls": report.api_calls,
        "errors": report.errors,
        "details": report.summary(),
    }


async def _run_sync_job(job: SyncJob, exchanges: Sequence[str] | None) -> dict[str, Any]:
    async with _sync_lock:
        logger.info("Starting symbol sync pass")
        try:
            report = await job(exchanges)
        except Exception:
            logger.exception("Symbol sync pass crashed")
            raise
    return _report_payload(report)


@app.on_event("startup")
async def startup() -> None:
    """Create the catalog tables when the service boots."""

    logger.info("Starting with settings %s", settings.dict_for_logging())
    await init_database()


@app.on_event("shutdown")
async def shutdown() -> None:
    await dispose_engine()


@app.get("/health", tags=["system"])
async def health() -> dict[str, Any]:
    """Lightweight health probe."""

    return {
        "status": "ok",
        "rate_limit": settings.requests_per_minute,
        "exchanges": settings.exchanges,
        "sync_running": _sync_lock.locked(),
    }


@app.get("/metrics", tags=["system"])
async def metrics() -> Response:
    """Prometheus scrape endpoint."""

    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)


@app.post("/jobs/symbol-sync", status_code=status.HTTP_202_ACCEPTED, tags=["jobs"])
async def trigger_symbol_sync(
    background_tasks: BackgroundTasks,
    job: Annotated[SyncJob, Depends(get_sync_job)],
    run_sync: bool = False,
    exchange: Annotated[list[str] | None, Query()] = None,
) -> dict[str, Any]:
    """Schedule or run one reconciliation pass."""

    if _sync_lock.locked():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A symbol sync pass is already running")
    if run_sync:
        return await _run_sync_job(job, exchange)
    background_tasks.add_task(_run_sync_job, job, exchange)
    return {"status": "scheduled", "exchanges": exchange or settings.exchanges}


@app.get("/jobs/status", response_model=list[JobRunSchema], tags=["jobs"])
async def job_status(
    store: Annotated[CatalogStore, Depends(get_catalog_store)],
    limit: Annotated[int, Query(ge=1, le=500)] = 20,
) -> list[JobRunSchema]:
    """Most recent reconciliation outcomes, newest first."""

    try:
        runs = await store.recent_job_runs(settings.job_name, limit=limit)
    except StoreError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [
        JobRunSchema(job_name=run.job_name, last_run=run.last_run, status=run.status.value, details=run.details)
        for run in runs
    ]
