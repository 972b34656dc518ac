"""OpenTelemetry instruments describing symbol sync passes."""

from __future__ import annotations

from collections.abc import Iterable
from functools import lru_cache
from typing import TYPE_CHECKING

from opentelemetry import metrics
from opentelemetry.metrics import CallbackOptions, Meter, Observation

if TYPE_CHECKING:
    from symbol_sync.domain import SyncReport

METER_NAME = "symbol_sync"


class SyncMetrics:
    """Counters and gauges fed by the provider client and the reconciler.

    Instruments are created on the given meter, or on the global meter
    provider so a provider installed later by ``setup_telemetry`` still
    receives the measurements.
    """

    def __init__(self, meter: Meter | None = None) -> None:
        meter = meter or metrics.get_meter(METER_NAME)
        self._api_calls = meter.create_counter(
            "symbol_sync_api_calls",
            description="Requests sent to the market data provider",
        )
        self._errors = meter.create_counter(
            "symbol_sync_errors",
            description="Errors raised while syncing symbols",
        )
        self._new = meter.create_counter(
            "symbol_sync_new_symbols",
            description="Symbols inserted into the catalog for the first time",
        )
        self._reactivated = meter.create_counter(
            "symbol_sync_reactivated_symbols",
            description="Inactive symbols flipped back to active",
        )
        self._delisted = meter.create_counter(
            "symbol_sync_delisted_symbols",
            description="Active symbols marked inactive",
        )
        self._completed = meter.create_counter(
            "symbol_sync_completed",
            description="Finished reconciliation passes",
        )
        self._last_total: int | None = None
        self._last_active: int | None = None
        meter.create_observable_gauge(
            "symbol_sync_total_symbols",
            callbacks=[self._observe_total],
            description="Symbols observed in the latest provider roster",
        )
        meter.create_observable_gauge(
            "symbol_sync_active_symbols",
            callbacks=[self._observe_active],
            description="Symbols active after the latest pass",
        )

    def api_call(self, endpoint: str) -> None:
        self._api_calls.add(1, {"endpoint": endpoint})

    def error(self, kind: str) -> None:
        self._errors.add(1, {"type": kind})

    def record_pass(self, report: "SyncReport") -> None:
        """Publish the outcome of a finished pass."""

        if not report.aborted:
            self._last_total = report.observed
            self._last_active = report.active
            self._new.add(report.new)
            self._reactivated.add(report.reactivated)
            self._delisted.add(report.delisted)
        self._completed.add(1, {"status": report.status.value})

    def _observe_total(self, options: CallbackOptions) -> Iterable[Observation]:
        if self._last_total is None:
            return []
        return [Observation(self._last_total)]

    def _observe_active(self, options: CallbackOptions) -> Iterable[Observation]:
        if self._last_active is None:
            return []
        return [Observation(self._last_active)]


@lru_cache(maxsize=1)
def get_sync_metrics() -> SyncMetrics:
    """Return the process-wide metrics sink."""

    return SyncMetrics()


__all__ = ["METER_NAME", "SyncMetrics", "get_sync_metrics"]
