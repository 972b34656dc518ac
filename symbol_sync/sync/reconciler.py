"""One reconciliation pass of the provider roster against the symbol master.

The pass reads the active set, fetches every configured exchange roster,
fetches profiles on a bounded worker pool, upserts the observed symbols through
a single writer, and only then marks the missing symbols inactive. Exactly one
``JobRun`` is recorded once the pass concludes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from symbol_sync.config import SyncSettings
from symbol_sync.core.metrics import SyncMetrics, get_sync_metrics
from symbol_sync.domain import (
    JobOutcome,
    JobRun,
    ProfileOutcome,
    ProfileResult,
    SymbolRecord,
    SymbolStub,
    SyncReport,
    UpsertOutcome,
)
from symbol_sync.providers.finnhub import FinnhubClient, ProviderError
from symbol_sync.sync.diff import batched, compute_delisted, dedupe_roster
from symbol_sync.sync.store import CatalogStore, StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Observation:
    record: SymbolRecord
    refresh_metadata: bool


class _PassAborted(Exception):
    pass


class Reconciler:
    """Drive the provider client and the catalog store through one pass.

    A reconciler runs one pass at a time; callers serialise ``run``.
    """

    def __init__(
        self,
        client: FinnhubClient,
        store: CatalogStore,
        settings: SyncSettings,
        metrics: SyncMetrics | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._settings = settings
        self._metrics = metrics or get_sync_metrics()
        self._local_errors = 0

    async def run(self, exchanges: Sequence[str] | None = None) -> SyncReport:
        exchanges = list(exchanges or self._settings.exchanges)
        report = SyncReport(exchanges=exchanges)
        calls_before = self._client.api_calls
        errors_before = self._client.errors
        self._local_errors = 0

        logger.info("Starting %s for exchanges %s", self._settings.job_name, ", ".join(exchanges))
        try:
            await self._reconcile(exchanges, report)
        except _PassAborted as exc:
            report.failure = str(exc)

        report.api_calls = self._client.api_calls - calls_before
        report.errors = (self._client.errors - errors_before) + self._local_errors
        if report.aborted or report.errors > self._settings.error_threshold:
            report.status = JobOutcome.FAILED

        if not await self._record(report):
            report.errors += 1
        self._metrics.record_pass(report)
        log = logger.error if report.status is JobOutcome.FAILED else logger.info
        log("Completed %s (%s): %s", self._settings.job_name, report.status.value, report.summary())
        return report

    async def _reconcile(self, exchanges: list[str], report: SyncReport) -> None:
        try:
            current_active = await self._store.load_active_symbols()
        except StoreError as exc:
            self._store_error("Could not read the active symbol set: %s", exc)
            raise _PassAborted(f"loading active symbols failed: {exc}") from exc

        roster = await self._fetch_roster(exchanges)
        logger.info(
            "Roster holds %d symbols; catalog has %d active",
            len(roster),
            len(current_active),
        )

        await self._observe(roster, current_active, report)
        observed = {stub.symbol for stub in roster}
        report.observed = len(observed)

        delisted = compute_delisted(current_active, observed)
        await self._delist(sorted(delisted), report)
        await self._validate(report)

    async def _fetch_roster(self, exchanges: list[str]) -> list[SymbolStub]:
        if not exchanges:
            self._local_errors += 1
            self._metrics.error("empty_roster")
            logger.error("No exchanges configured, aborting pass")
            raise _PassAborted("no exchanges configured")
        stubs: list[SymbolStub] = []
        for exchange in exchanges:
            try:
                listed = await self._client.list_symbols(exchange)
            except ProviderError as exc:
                logger.error("Roster fetch for %s failed, aborting pass: %s", exchange, exc)
                raise _PassAborted(f"roster fetch for {exchange} failed: {exc}") from exc
            if not listed:
                # An empty roster would delist the whole exchange
                self._local_errors += 1
                self._metrics.error("empty_roster")
                logger.error("Roster for %s came back empty, aborting pass", exchange)
                raise _PassAborted(f"roster fetch for {exchange} returned no symbols")
            logger.info("Fetched %d symbols for %s", len(listed), exchange)
            stubs.extend(listed)

        roster = dedupe_roster(stubs)
        if len(roster) != len(stubs):
            logger.warning(
                "Roster repeated %d tickers; keeping the last entry for each",
                len(stubs) - len(roster),
            )
        return roster

    async def _observe(
        self,
        roster: list[SymbolStub],
        current_active: set[str],
        report: SyncReport,
    ) -> None:
        """Fetch profiles concurrently and feed them to a single writer."""

        queue: asyncio.Queue[Optional[_Observation]] = asyncio.Queue()
        semaphore = asyncio.Semaphore(self._settings.profile_workers)
        writer = asyncio.create_task(self._write(queue, report))

        async def _worker(stub: SymbolStub) -> None:
            if not self._settings.refresh_existing_profiles and stub.symbol in current_active:
                await queue.put(_Observation(self._bare_record(stub), False))
                return
            async with semaphore:
                result = await self._client.get_profile(stub.symbol)
            await queue.put(self._to_observation(stub, result))

        try:
            await asyncio.gather(*(_worker(stub) for stub in roster))
            await queue.put(None)
            await writer
        finally:
            if not writer.done():
                writer.cancel()

    def _to_observation(self, stub: SymbolStub, result: ProfileResult) -> _Observation:
        if result.outcome is ProfileOutcome.FOUND and result.profile is not None:
            record = SymbolRecord.from_profile(stub, result.profile, data_source=self._settings.data_source)
            return _Observation(record, True)
        if result.outcome is ProfileOutcome.NOT_FOUND:
            logger.debug("No profile for %s; storing symbol and exchange only", stub.symbol)
            return _Observation(self._bare_record(stub), True)
        # Failed lookup: keep whatever metadata the catalog already has
        return _Observation(self._bare_record(stub), False)

    def _bare_record(self, stub: SymbolStub) -> SymbolRecord:
        return SymbolRecord.from_stub(stub, data_source=self._settings.data_source)

    async def _write(self, queue: asyncio.Queue[Optional[_Observation]], report: SyncReport) -> None:
        while True:
            item = await queue.get()
            if item is None:
                return
            try:
                outcome = await self._store.upsert(item.record, refresh_metadata=item.refresh_metadata)
            except StoreError as exc:
                self._store_error("Upsert failed for %s: %s", item.record.symbol, exc)
                continue
            if outcome is UpsertOutcome.INSERTED:
                report.new += 1
            elif outcome is UpsertOutcome.REACTIVATED:
                report.reactivated += 1
            else:
                report.refreshed += 1

    async def _delist(self, delisted: list[str], report: SyncReport) -> None:
        for batch in batched(delisted, self._settings.delist_batch_size):
            try:
                report.delisted += await self._store.mark_inactive(batch)
            except StoreError as exc:
                self._store_error("Failed to mark %d symbols inactive: %s", len(batch), exc)
        if delisted:
            logger.info("Marked %d of %d missing symbols inactive", report.delisted, len(delisted))

    async def _validate(self, report: SyncReport) -> None:
        try:
            active_count = await self._store.count_active()
        except StoreError as exc:
            self._store_error("Could not count active symbols: %s", exc)
            return
        expected = int(report.observed * self._settings.min_active_ratio)
        if active_count < expected:
            self._local_errors += 1
            self._metrics.error("data_validation")
            logger.error(
                "Active symbols (%d) much lower than expected (%d of %d observed)",
                active_count,
                expected,
                report.observed,
            )

    async def _record(self, report: SyncReport) -> bool:
        run = JobRun(
            job_name=self._settings.job_name,
            last_run=datetime.now(timezone.utc),
            status=report.status,
            details=report.summary(),
        )
        try:
            await self._store.record_job_run(run)
        except StoreError as exc:
            self._metrics.error("store")
            logger.error("Failed to record job status for %s: %s", run.job_name, exc)
            return False
        return True

    def _store_error(self, message: str, *args: object) -> None:
        self._local_errors += 1
        self._metrics.error("store")
        logger.error(message, *args)


__all__ = ["Reconciler"]
