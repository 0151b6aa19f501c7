"""OpenTelemetry wiring for the KPI engine.

Spans and engine metrics are always emitted through the global API objects.
Until ``setup_telemetry`` installs SDK providers those resolve to no-ops, so
tests and local runs pay nothing for them.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI
from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes
from sqlalchemy.ext.asyncio import AsyncEngine

from kpi_engine.config import AppSettings

logger = logging.getLogger(__name__)

SCOPE = "kpi_engine"
_METRIC_EXPORT_INTERVAL_MS = 10000
_configured = False


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(SCOPE)


class EngineMetrics:
    """Counters and histograms describing snapshot and cash activity."""

    def __init__(self, meter: metrics.Meter) -> None:
        self.computations = meter.create_counter(
            "kpi.computations",
            description="KPI snapshot computations by outcome",
        )
        self.computation_duration = meter.create_histogram(
            "kpi.computation.duration",
            unit="s",
            description="Wall time of a KPI snapshot computation",
        )
        self.stale_metrics = meter.create_counter(
            "kpi.metrics.stale",
            description="Metrics carried forward from an earlier snapshot",
        )
        self.cash_syncs = meter.create_counter(
            "kpi.cash.syncs",
            description="Cash balance syncs by adequacy status",
        )

    def record_computation(self, outcome: str, duration_seconds: float, stale: int = 0) -> None:
        attributes = {"outcome": outcome}
        self.computations.add(1, attributes)
        self.computation_duration.record(duration_seconds, attributes)
        if stale:
            self.stale_metrics.add(stale)

    def record_cash_sync(self, status: str) -> None:
        self.cash_syncs.add(1, {"status": status})


_engine_metrics: EngineMetrics | None = None


def get_engine_metrics() -> EngineMetrics:
    # Instruments from the proxy meter start exporting once a provider is installed
    global _engine_metrics  # noqa: PLW0603
    if _engine_metrics is None:
        _engine_metrics = EngineMetrics(metrics.get_meter(SCOPE))
    return _engine_metrics


def setup_telemetry(app: FastAPI, settings: AppSettings, engine: AsyncEngine | None = None) -> None:
    """Install OTLP exporters and instrument FastAPI, httpx and SQLAlchemy once per process."""

    global _configured  # noqa: PLW0603 - single initialisation guard

    if _configured:
        return
    if not settings.telemetry_enabled:
        logger.info("Telemetry disabled via configuration")
        return

    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: settings.telemetry_service_name or settings.app_name,
            ResourceAttributes.SERVICE_NAMESPACE: "kpi-engine",
        }
    )
    exporter_options: dict[str, Any] = {"insecure": settings.telemetry_otlp_insecure}
    if settings.telemetry_otlp_endpoint:
        exporter_options["endpoint"] = settings.telemetry_otlp_endpoint

    tracer_provider = TracerProvider(
        resource=resource,
        sampler=ParentBased(TraceIdRatioBased(settings.telemetry_sample_ratio)),
    )
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_options)))
    trace.set_tracer_provider(tracer_provider)

    meter_provider = MeterProvider(
        resource=resource,
        metric_readers=[
            PeriodicExportingMetricReader(
                OTLPMetricExporter(**exporter_options),
                export_interval_millis=_METRIC_EXPORT_INTERVAL_MS,
            )
        ],
    )
    metrics.set_meter_provider(meter_provider)

    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter(**exporter_options)))
    set_logger_provider(logger_provider)
    LoggingInstrumentor().instrument(set_logging_format=False)

    FastAPIInstrumentor.instrument_app(app, tracer_provider=tracer_provider, meter_provider=meter_provider)
    # Adapter calls to the bridges go through httpx
    HTTPXClientInstrumentor().instrument(tracer_provider=tracer_provider)
    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine, tracer_provider=tracer_provider)

    _configured = True
    logger.info("Telemetry exporting to %s", settings.telemetry_otlp_endpoint or "the default OTLP endpoint")


__all__ = ["EngineMetrics", "get_engine_metrics", "get_tracer", "setup_telemetry"]
