"""OpenTelemetry + Prometheus fallback wiring for plancheck."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from plancheck import config

logger = logging.getLogger("plancheck.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_evaluation_counter: Any | None = None
_evaluation_latency_hist: Any | None = None
_collection_error_counter: Any | None = None
_run_counter: Any | None = None

_prom_enabled = False
_prom_evaluation_counter: Any | None = None
_prom_evaluation_latency_hist: Any | None = None
_prom_collection_error_counter: Any | None = None
_prom_run_counter: Any | None = None


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


def _labels(**values: str) -> dict[str, str]:
    return {key: (value or "").strip() or "unknown" for key, value in values.items()}


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor
    global _evaluation_counter, _evaluation_latency_hist, _collection_error_counter, _run_counter
    global _prom_enabled
    global _prom_evaluation_counter, _prom_evaluation_latency_hist, _prom_collection_error_counter, _prom_run_counter

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (PLANCHECK_OTEL_ENABLED=false)")
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
    service_name = config.OTEL_SERVICE_NAME or "plancheck"

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "plancheck",
        }
    )

    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=traces_endpoint or None)))
    trace.set_tracer_provider(trace_provider)
    tracer = trace.get_tracer("plancheck.engine")

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=metrics_endpoint or None)
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("plancheck.engine")

    _evaluation_counter = meter.create_counter(
        "plancheck_evaluations_total",
        unit="1",
        description="Scored candidates by kind and status",
    )
    _evaluation_latency_hist = meter.create_histogram(
        "plancheck_evaluation_latency_ms",
        unit="ms",
        description="Per-candidate evidence collection and scoring latency",
    )
    _collection_error_counter = meter.create_counter(
        "plancheck_collection_errors_total",
        unit="1",
        description="Unreadable locations skipped by evidence collectors",
    )
    _run_counter = meter.create_counter(
        "plancheck_runs_total",
        unit="1",
        description="Completed analysis runs",
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
            _prom_evaluation_counter = Counter(
                "plancheck_evaluations_total",
                "Scored candidates by kind and status",
                ["kind", "status"],
            )
            _prom_evaluation_latency_hist = Histogram(
                "plancheck_evaluation_latency_ms",
                "Per-candidate evidence collection and scoring latency",
                ["kind"],
            )
            _prom_collection_error_counter = Counter(
                "plancheck_collection_errors_total",
                "Unreadable locations skipped by evidence collectors",
                ["collector"],
            )
            _prom_run_counter = Counter(
                "plancheck_runs_total",
                "Completed analysis runs",
                ["kind"],
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
    except Exception as exc:  # noqa: BLE001
        logger.debug("FastAPI uninstrument failed: %s", exc)
    for provider in (_meter_provider, _trace_provider):
        try:
            if provider is not None:
                provider.shutdown()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Telemetry provider shutdown failed: %s", exc)
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


def record_evaluation(kind: str, status: str, duration_ms: float) -> None:
    labels = _labels(kind=kind, status=status)
    if _enabled and _evaluation_counter is not None:
        _evaluation_counter.add(1, labels)
    if _enabled and _evaluation_latency_hist is not None:
        _evaluation_latency_hist.record(max(0.0, float(duration_ms)), _labels(kind=kind))
    if _prom_enabled and _prom_evaluation_counter is not None:
        _prom_evaluation_counter.labels(**labels).inc()
    if _prom_enabled and _prom_evaluation_latency_hist is not None:
        _prom_evaluation_latency_hist.labels(**_labels(kind=kind)).observe(max(0.0, float(duration_ms)))


def record_collection_error(collector: str) -> None:
    labels = _labels(collector=collector)
    if _enabled and _collection_error_counter is not None:
        _collection_error_counter.add(1, labels)
    if _prom_enabled and _prom_collection_error_counter is not None:
        _prom_collection_error_counter.labels(**labels).inc()


def record_run(kind: str) -> None:
    labels = _labels(kind=kind)
    if _enabled and _run_counter is not None:
        _run_counter.add(1, labels)
    if _prom_enabled and _prom_run_counter is not None:
        _prom_run_counter.labels(**labels).inc()
