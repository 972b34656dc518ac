"""OpenTelemetry wiring for the sync service and CLI."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI
from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.system_metrics import SystemMetricsInstrumentor
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes
from sqlalchemy.ext.asyncio import AsyncEngine

from symbol_sync import __version__
from symbol_sync.config import SyncSettings

logger = logging.getLogger(__name__)

_TELEMETRY_INITIALISED = False
_OTLP_EXPORT_INTERVAL_MS = 15000


def setup_telemetry(
    settings: SyncSettings,
    app: FastAPI | None = None,
    engine: AsyncEngine | None = None,
) -> None:
    """Install the global meter provider and, if enabled, OTLP export.

    The sync counters are always readable through the Prometheus reader. With
    ``telemetry_enabled`` the same measurements are also pushed over OTLP,
    spans and log records are exported, and FastAPI, httpx, SQLAlchemy and
    host metrics are instrumented.
    """

    global _TELEMETRY_INITIALISED  # noqa: PLW0603 - single initialisation guard

    if _TELEMETRY_INITIALISED:
        return
    _TELEMETRY_INITIALISED = True

    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: settings.telemetry_service_name or settings.app_name,
            ResourceAttributes.SERVICE_VERSION: __version__,
            "symbol_sync.job_name": settings.job_name,
        }
    )
    otlp = _otlp_options(settings) if settings.telemetry_enabled else None

    readers: list[MetricReader] = [PrometheusMetricReader()]
    if otlp is not None:
        readers.append(
            PeriodicExportingMetricReader(
                OTLPMetricExporter(**otlp),
                export_interval_millis=_OTLP_EXPORT_INTERVAL_MS,
            )
        )
    meter_provider = MeterProvider(resource=resource, metric_readers=readers)
    metrics.set_meter_provider(meter_provider)

    if otlp is None:
        logger.info("OTLP export disabled; sync metrics available at /metrics only")
        return

    tracer_provider = TracerProvider(
        resource=resource,
        sampler=ParentBased(TraceIdRatioBased(settings.telemetry_sample_ratio)),
    )
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**otlp)))
    trace.set_tracer_provider(tracer_provider)

    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter(**otlp)))
    set_logger_provider(logger_provider)
    LoggingInstrumentor().instrument(set_logging_format=False)

    _instrument(app, engine, tracer_provider, meter_provider)
    logger.info("OTLP export enabled for %s", settings.telemetry_otlp_endpoint or "the default collector")


def _otlp_options(settings: SyncSettings) -> dict[str, Any]:
    options: dict[str, Any] = {"insecure": settings.telemetry_otlp_insecure}
    if settings.telemetry_otlp_endpoint:
        options["endpoint"] = settings.telemetry_otlp_endpoint
    return options


def _instrument(
    app: FastAPI | None,
    engine: AsyncEngine | None,
    tracer_provider: TracerProvider,
    meter_provider: MeterProvider,
) -> None:
    if app is not None:
        FastAPIInstrumentor.instrument_app(
            app,
            tracer_provider=tracer_provider,
            meter_provider=meter_provider,
        )
    # Spans around every Finnhub request, retries included
    HTTPXClientInstrumentor().instrument(tracer_provider=tracer_provider)
    SystemMetricsInstrumentor().instrument(meter_provider=meter_provider)
    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine, tracer_provider=tracer_provider)


__all__ = ["setup_telemetry"]
