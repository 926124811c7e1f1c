"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from micro_search.observability.context import get_trace_context, index_context, set_trace_context, trace_context
from micro_search.observability.logging import JsonFormatter, configure_logging
from micro_search.observability.metrics import (
    DOCUMENT_COUNT,
    OPERATION_COUNT,
    OPERATION_LATENCY,
    SNAPSHOT_BYTES,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
    track_operation,
)
from micro_search.observability.setup import setup_observability
from micro_search.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "DOCUMENT_COUNT",
    "OPERATION_COUNT",
    "OPERATION_LATENCY",
    "SNAPSHOT_BYTES",
    "JsonFormatter",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "index_context",
    "init_metrics",
    "init_tracing",
    "set_trace_context",
    "setup_observability",
    "trace_context",
    "track_latency",
    "track_operation",
]
