"""Prometheus metrics for engine operations, mirrored to OpenTelemetry instruments."""

from __future__ import annotations

from contextlib import contextmanager
import time
from typing import TYPE_CHECKING, Any

from opentelemetry import metrics as otel_metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


if TYPE_CHECKING:
    from collections.abc import Generator, Sequence


_meter_holder: dict[str, Any] = {"meter": None, "provider": None}


def init_metrics(
    service_name: str = "micro-search",
    resource_attributes: dict[str, str] | None = None,
    metric_readers: Sequence[MetricReader] | None = None,
) -> MeterProvider:
    """Initialize OpenTelemetry metrics (idempotent)."""
    provider = _meter_holder.get("provider")
    if isinstance(provider, MeterProvider):
        return provider

    attributes = {"service.name": service_name}
    if resource_attributes:
        attributes.update(resource_attributes)
    provider = MeterProvider(resource=Resource.create(attributes), metric_readers=list(metric_readers or []))
    if not isinstance(otel_metrics.get_meter_provider(), MeterProvider):
        otel_metrics.set_meter_provider(provider)
    _meter_holder["provider"] = provider
    _meter_holder["meter"] = provider.get_meter(__name__)
    return provider


def _get_meter():
    meter = _meter_holder.get("meter")
    if meter is None:
        init_metrics()
        meter = _meter_holder.get("meter")
    return meter


def _label_key(labels: dict[str, str]) -> tuple[tuple[str, str], ...]:
    return tuple(sorted(labels.items()))


class _BoundMetric:
    def __init__(self, bridge: MetricBridge, labels: dict[str, str]) -> None:
        self._bridge = bridge
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._bridge.inc(self._labels, amount)

    def observe(self, value: float) -> None:
        self._bridge.observe(self._labels, value)

    def set(self, value: float) -> None:
        self._bridge.set(self._labels, value)


class MetricBridge:
    """A Prometheus metric and the OpenTelemetry instrument that mirrors it."""

    _PROMETHEUS_TYPES = {"counter": Counter, "histogram": Histogram, "gauge": Gauge}

    def __init__(
        self,
        kind: str,
        name: str,
        description: str,
        labelnames: Sequence[str],
        *,
        buckets: Sequence[float] | None = None,
    ) -> None:
        if kind not in self._PROMETHEUS_TYPES:
            raise ValueError(f"Unknown metric kind: {kind}")
        extra: dict[str, Any] = {"buckets": tuple(buckets)} if buckets is not None else {}
        self.kind = kind
        self.name = name
        self.description = description
        self.prometheus = self._PROMETHEUS_TYPES[kind](name, description, list(labelnames), **extra)
        self._otel_instrument = None
        self._last_values: dict[tuple[tuple[str, str], ...], float] = {}

    def labels(self, **labels: str) -> _BoundMetric:
        return _BoundMetric(self, labels)

    def _ensure_otel_instrument(self):
        if self._otel_instrument is not None:
            return self._otel_instrument
        meter = _get_meter()
        if self.kind == "counter":
            self._otel_instrument = meter.create_counter(self.name, description=self.description)
        elif self.kind == "histogram":
            self._otel_instrument = meter.create_histogram(self.name, description=self.description)
        else:
            # Gauges are exported as up-down counters fed with deltas.
            self._otel_instrument = meter.create_up_down_counter(self.name, description=self.description)
        return self._otel_instrument

    def inc(self, labels: dict[str, str], amount: float) -> None:
        self.prometheus.labels(**labels).inc(amount)
        self._ensure_otel_instrument().add(amount, labels)

    def observe(self, labels: dict[str, str], value: float) -> None:
        self.prometheus.labels(**labels).observe(value)
        self._ensure_otel_instrument().record(value, labels)

    def set(self, labels: dict[str, str], value: float) -> None:
        self.prometheus.labels(**labels).set(value)
        otel = self._ensure_otel_instrument()
        key = _label_key(labels)
        delta = value - self._last_values.get(key, 0.0)
        if delta:
            otel.add(delta, labels)
        self._last_values[key] = value


OPERATION_LATENCY = MetricBridge(
    "histogram",
    "microsearch_operation_latency_seconds",
    "Latency of index operations in seconds",
    ["index", "operation"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

OPERATION_COUNT = MetricBridge(
    "counter",
    "microsearch_operations_total",
    "Total index operations",
    ["index", "operation", "status"],
)

DOCUMENT_COUNT = MetricBridge(
    "gauge",
    "microsearch_documents",
    "Documents held by the index",
    ["index"],
)

SNAPSHOT_BYTES = MetricBridge(
    "gauge",
    "microsearch_snapshot_bytes",
    "Size of the last snapshot written or read",
    ["index"],
)


@contextmanager
def track_latency(histogram: MetricBridge, **labels: str) -> Generator[None, None, None]:
    """Context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


@contextmanager
def track_operation(index: str, operation: str) -> Generator[None, None, None]:
    """Record latency and an ok/error outcome for one engine operation."""
    status = "error"
    try:
        with track_latency(OPERATION_LATENCY, index=index, operation=operation):
            yield
        status = "ok"
    finally:
        OPERATION_COUNT.labels(index=index, operation=operation, status=status).inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get content type for a metrics endpoint."""
    return CONTENT_TYPE_LATEST
