"""OpenTelemetry + Prometheus fallback wiring for the taskhub backend."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from taskhub import config

logger = logging.getLogger("taskhub.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_transaction_counter: Any | None = None
_transaction_latency_hist: Any | None = None
_link_counter: Any | None = None

_prom_enabled = False
_prom_transaction_counter: Any | None = None
_prom_transaction_latency_hist: Any | None = None
_prom_link_counter: Any | None = None


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


def _prom_labels(**extra: str) -> dict[str, str]:
    return {key: (value or "").strip() or "unknown" for key, value in extra.items()}


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor
    global _transaction_counter, _transaction_latency_hist, _link_counter
    global _prom_enabled, _prom_transaction_counter, _prom_transaction_latency_hist, _prom_link_counter

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (TASKHUB_OTEL_ENABLED=false)")
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

    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    service_name = config.OTEL_SERVICE_NAME or "taskhub-backend"

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "taskhub",
        }
    )

    trace_provider = TracerProvider(resource=resource)
    trace_exporter = OTLPSpanExporter(endpoint=traces_endpoint or None)
    trace_provider.add_span_processor(BatchSpanProcessor(trace_exporter))
    trace.set_tracer_provider(trace_provider)
    tracer = trace.get_tracer("taskhub.backend")

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=metrics_endpoint or None)
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("taskhub.backend")

    _transaction_counter = meter.create_counter(
        "taskhub_transactions_total",
        unit="1",
        description="Count of mutation transactions by outcome",
    )
    _transaction_latency_hist = meter.create_histogram(
        "taskhub_transaction_latency_ms",
        unit="ms",
        description="Latency of mutation transactions",
    )
    _link_counter = meter.create_counter(
        "taskhub_links_total",
        unit="1",
        description="Idempotent link requests by join table and outcome",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = tracer
    _fastapi_instrumentor = FastAPIInstrumentor()
    _enabled = True

    if app:
        _fastapi_instrumentor.instrument_app(app)

    if config.PROM_PORT > 0:
        try:
            from prometheus_client import Counter, Histogram, start_http_server

            start_http_server(config.PROM_PORT)
            _prom_enabled = True
            _prom_transaction_counter = Counter(
                "taskhub_transactions_total",
                "Count of mutation transactions by outcome",
                ["operation", "result"],
            )
            _prom_transaction_latency_hist = Histogram(
                "taskhub_transaction_latency_ms",
                "Latency of mutation transactions",
                ["operation", "result"],
            )
            _prom_link_counter = Counter(
                "taskhub_links_total",
                "Idempotent link requests by join table and outcome",
                ["table", "result"],
            )
            logger.info("Prometheus fallback metrics server listening on port %s", config.PROM_PORT)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Prometheus fallback not started: %s", exc)
            _prom_enabled = False

    logger.info(
        "OpenTelemetry initialized (service=%s endpoint=%s)",
        service_name,
        config.OTEL_ENDPOINT,
    )


def shutdown(app: FastAPI | None = None) -> None:
    global _enabled
    if not _initialized:
        return
    try:
        if app and _fastapi_instrumentor:
            _fastapi_instrumentor.uninstrument_app(app)
    except Exception:
        logger.debug("FastAPI uninstrument failed", exc_info=True)
    try:
        if _meter_provider is not None:
            _meter_provider.shutdown()
    except Exception:
        logger.debug("Meter provider shutdown failed", exc_info=True)
    try:
        if _trace_provider is not None:
            _trace_provider.shutdown()
    except Exception:
        logger.debug("Trace provider shutdown failed", exc_info=True)
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


def record_transaction(operation: str, result: str, duration_ms: float) -> None:
    labels = {
        "operation": operation or "unknown",
        "result": result or "unknown",
    }
    if _enabled and _transaction_counter is not None:
        _transaction_counter.add(1, labels)
    if _enabled and _transaction_latency_hist is not None:
        _transaction_latency_hist.record(max(0.0, float(duration_ms)), labels)
    if _prom_enabled and _prom_transaction_counter is not None:
        _prom_transaction_counter.labels(**_prom_labels(**labels)).inc()
    if _prom_enabled and _prom_transaction_latency_hist is not None:
        _prom_transaction_latency_hist.labels(**_prom_labels(**labels)).observe(max(0.0, float(duration_ms)))


def record_link(table: str, result: str) -> None:
    labels = {
        "table": table or "unknown",
        "result": result or "unknown",
    }
    if _enabled and _link_counter is not None:
        _link_counter.add(1, labels)
    if _prom_enabled and _prom_link_counter is not None:
        _prom_link_counter.labels(**_prom_labels(**labels)).inc()
