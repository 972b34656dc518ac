"""HTTP surface tests with dependency overrides."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from symbol_sync import main
from symbol_sync.domain import JobOutcome, JobRun, SyncReport
from symbol_sync.sync.store import CatalogStore, StoreError


class FakeJob:
    def __init__(self) -> None:
        self.calls: list[object] = []

    async def __call__(self, exchanges):
        self.calls.append(exchanges)
        return SyncReport(exchanges=list(exchanges or ["US"]), observed=2, new=1, delisted=1, api_calls=3)


@pytest.fixture
def api():
    job = FakeJob()
    main.app.dependency_overrides[main.get_sync_job] = lambda: job
    yield job
    main.app.dependency_overrides.clear()


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")


@pytest.mark.asyncio
async def test_health_reports_configuration(api):
    async with _client() as client:
        response = await client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["sync_running"] is False


@pytest.mark.asyncio
async def test_metrics_endpoint_serves_prometheus_text(api):
    async with _client() as client:
        response = await client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")


@pytest.mark.asyncio
async def test_synchronous_trigger_returns_pass_report(api):
    async with _client() as client:
        response = await client.post(
            "/jobs/symbol-sync",
            params=[("run_sync", "true"), ("exchange", "US"), ("exchange", "TO")],
        )

    assert response.status_code == 202
    payload = response.json()
    assert payload["status"] == "success"
    assert payload["exchanges"] == ["US", "TO"]
    assert payload["new"] == 1
    assert payload["delisted"] == 1
    assert "api_calls=3" in payload["details"]
    assert api.calls == [["US", "TO"]]


@pytest.mark.asyncio
async def test_background_trigger_is_scheduled(api):
    async with _client() as client:
        response = await client.post("/jobs/symbol-sync")

    assert response.status_code == 202
    assert response.json()["status"] == "scheduled"


@pytest.mark.asyncio
async def test_trigger_is_rejected_while_a_pass_runs(api):
    await main._sync_lock.acquire()
    try:
        async with _client() as client:
            response = await client.post("/jobs/symbol-sync", params={"run_sync": "true"})
    finally:
        main._sync_lock.release()

    assert response.status_code == 409
    assert api.calls == []


@pytest.mark.asyncio
async def test_job_status_lists_recorded_runs(api, catalog_factory):
    store = CatalogStore(await catalog_factory())
    start = datetime(2024, 5, 1, tzinfo=timezone.utc)
    await store.record_job_run(JobRun("symbol_sync", start, JobOutcome.SUCCESS, "observed=2"))
    await store.record_job_run(
        JobRun("symbol_sync", start + timedelta(days=1), JobOutcome.FAILED, "roster fetch for US failed")
    )
    main.app.dependency_overrides[main.get_catalog_store] = lambda: store

    async with _client() as client:
        response = await client.get("/jobs/status", params={"limit": 5})

    assert response.status_code == 200
    payload = response.json()
    assert [entry["status"] for entry in payload] == ["failed", "success"]
    assert payload[0]["job_name"] == "symbol_sync"


@pytest.mark.asyncio
async def test_job_status_unavailable_when_store_fails(api):
    class BrokenStore:
        async def recent_job_runs(self, job_name=None, limit=20):
            raise StoreError("database is down")

    main.app.dependency_overrides[main.get_catalog_store] = lambda: BrokenStore()

    async with _client() as client:
        response = await client.get("/jobs/status")

    assert response.status_code == 503
