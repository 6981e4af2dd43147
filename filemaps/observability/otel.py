"""Optional OpenTelemetry wiring for the File Maps backend."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from filemaps import config

logger = logging.getLogger("filemaps.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_scan_counter: Any | None = None
_scan_files_counter: Any | None = None
_scan_latency_hist: Any | None = None
_store_io_counter: Any | None = None
_store_io_latency_hist: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/"):
        endpoint = endpoint[:-1]
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor
    global _scan_counter, _scan_files_counter, _scan_latency_hist
    global _store_io_counter, _store_io_latency_hist

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (FILEMAPS_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    service_name = config.OTEL_SERVICE_NAME or "filemaps-backend"
    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "filemaps",
        }
    )

    trace_provider = TracerProvider(resource=resource)
    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    trace_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=traces_endpoint or None)))
    trace.set_tracer_provider(trace_provider)

    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    metric_reader = PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=metrics_endpoint or None))
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("filemaps.backend")

    _scan_counter = meter.create_counter(
        "filemaps_scans_total",
        unit="1",
        description="Directory scans by outcome",
    )
    _scan_files_counter = meter.create_counter(
        "filemaps_scan_files_total",
        unit="1",
        description="Files discovered and merged by directory scans",
    )
    _scan_latency_hist = meter.create_histogram(
        "filemaps_scan_latency_ms",
        unit="ms",
        description="Wall time of directory scans",
    )
    _store_io_counter = meter.create_counter(
        "filemaps_store_io_total",
        unit="1",
        description="Map document and registry reads/writes by outcome",
    )
    _store_io_latency_hist = meter.create_histogram(
        "filemaps_store_io_latency_ms",
        unit="ms",
        description="Latency of map document and registry reads/writes",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = trace.get_tracer("filemaps.backend")
    _fastapi_instrumentor = FastAPIInstrumentor()
    _enabled = True

    if app:
        _fastapi_instrumentor.instrument_app(app)

    logger.info(
        "OpenTelemetry initialized (service=%s endpoint=%s)",
        service_name,
        config.OTEL_ENDPOINT,
    )


def shutdown(app: FastAPI | None = None) -> None:
    global _enabled
    if not _initialized or not _enabled:
        return
    try:
        if app and _fastapi_instrumentor:
            _fastapi_instrumentor.uninstrument_app(app)
        if _meter_provider is not None:
            _meter_provider.shutdown()
        if _trace_provider is not None:
            _trace_provider.shutdown()
    except Exception as exc:  # noqa: BLE001
        logger.warning("OpenTelemetry shutdown failed: %s", exc)
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def record_scan(result: str, duration_ms: float, *, map_id: int | None, found: int = 0, merged: int = 0) -> None:
    if not _enabled:
        return
    labels = {
        "result": result or "unknown",
        "map_id": str(map_id) if map_id is not None else "none",
    }
    if _scan_counter is not None:
        _scan_counter.add(1, labels)
    if _scan_latency_hist is not None:
        _scan_latency_hist.record(max(0.0, float(duration_ms)), labels)
    if _scan_files_counter is not None:
        if found > 0:
            _scan_files_counter.add(found, {**labels, "stage": "found"})
        if merged > 0:
            _scan_files_counter.add(merged, {**labels, "stage": "merged"})


def record_store_io(entity: str, operation: str, result: str, duration_ms: float) -> None:
    if not _enabled:
        return
    labels = {
        "entity": entity or "unknown",
        "operation": operation or "unknown",
        "result": result or "unknown",
    }
    if _store_io_counter is not None:
        _store_io_counter.add(1, labels)
    if _store_io_latency_hist is not None:
        _store_io_latency_hist.record(max(0.0, float(duration_ms)), labels)
