"""Wire settings, limiter, client and store into a single sync pass."""

from __future__ import annotations

from collections.abc import Sequence

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from symbol_sync.config import SyncSettings, get_settings
from symbol_sync.core.metrics import SyncMetrics, get_sync_metrics
from symbol_sync.db.session import get_session_factory
from symbol_sync.domain import SyncReport
from symbol_sync.providers.finnhub import FinnhubClient
from symbol_sync.providers.rate_limit import RateLimiter
from symbol_sync.sync.reconciler import Reconciler
from symbol_sync.sync.store import CatalogStore


async def run_symbol_sync(
    settings: SyncSettings | None = None,
    *,
    exchanges: Sequence[str] | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    metrics: SyncMetrics | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> SyncReport:
    """Run one reconciliation pass with a fresh limiter and client."""

    settings = settings or get_settings()
    if not settings.finnhub_api_key:
        msg = "FINNHUB_API_KEY is required to run the symbol sync"
        raise RuntimeError(msg)

    metrics = metrics or get_sync_metrics()
    client = FinnhubClient(
        settings.finnhub_api_key,
        rate_limiter=RateLimiter.per_minute(settings.requests_per_minute),
        metrics=metrics,
        client=http_client,
        base_url=settings.finnhub_base_url,
        timeout=settings.http_timeout_seconds,
        max_retries=settings.max_retries,
        retry_delay=settings.retry_delay_seconds,
    )
    store = CatalogStore(session_factory or get_session_factory())
    try:
        return await Reconciler(client, store, settings, metrics).run(exchanges)
    finally:
        await client.aclose()


__all__ = ["run_symbol_sync"]
