"""Unit tests for observability module."""

import io
import json
import logging
import sys

from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
from prometheus_client import REGISTRY
import pytest

from micro_search import MemoryBlobStore, MicroSearch
from micro_search.observability import (
    DOCUMENT_COUNT,
    JsonFormatter,
    configure_logging,
    create_span,
    get_metrics,
    get_metrics_content_type,
    get_trace_context,
    index_context,
    init_tracing,
    set_trace_context,
    setup_observability,
    track_operation,
)
from micro_search.observability import tracing as tracing_module
from micro_search.observability.context import trace_context


def _record(msg: str = "test message", level: int = logging.INFO, name: str = "micro_search.engine") -> logging.LogRecord:
    return logging.LogRecord(name=name, level=level, pathname="test.py", lineno=1, msg=msg, args=(), exc_info=None)


@pytest.fixture
def span_exporter(monkeypatch):
    """Route spans created by ``create_span`` into an in-memory exporter."""
    monkeypatch.setitem(tracing_module._tracer_holder, "tracer", None)
    monkeypatch.setitem(tracing_module._tracer_holder, "provider", None)
    exporter = InMemorySpanExporter()
    init_tracing(span_processors=[SimpleSpanProcessor(exporter)])
    return exporter


@pytest.fixture
def fresh_context():
    token = trace_context.set(None)
    yield
    trace_context.reset(token)


@pytest.mark.unit
class TestJsonFormatter:
    """Tests for structured JSON logging."""

    def test_format_includes_trace_context(self, fresh_context):
        set_trace_context("a" * 32, "b" * 16)

        data = json.loads(JsonFormatter().format(_record()))

        assert data["message"] == "test message"
        assert data["level"] == "INFO"
        assert data["logger"] == "micro_search.engine"
        assert data["component"] == "engine"
        assert data["trace_id"] == "a" * 32
        assert data["span_id"] == "b" * 16
        assert "timestamp" in data

    def test_format_includes_index_from_context(self, fresh_context):
        with index_context("books"):
            data = json.loads(JsonFormatter().format(_record()))

        assert data["index"] == "books"
        assert "index" not in json.loads(JsonFormatter().format(_record()))

    def test_format_includes_extra_fields_and_redacts_secrets(self):
        record = _record()
        record.documents = 30
        record.api_key = "sk-123"
        record.payload = "x" * 600

        data = json.loads(JsonFormatter().format(record))

        assert data["documents"] == 30
        assert data["api_key"] == "[REDACTED]"
        assert data["payload"] == "x" * 500 + "..."

    def test_format_truncates_long_messages(self):
        data = json.loads(JsonFormatter().format(_record("m" * 3000)))

        assert len(data["message"]) == JsonFormatter.MAX_MESSAGE_LEN + 3

    def test_format_serializes_unusual_extras(self):
        record = _record()
        record.fields = {"b", "a"}

        assert json.loads(JsonFormatter().format(record))["fields"] == ["a", "b"]

    def test_format_includes_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord("test", logging.ERROR, "test.py", 1, "failed", (), sys.exc_info())

        data = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in data["exception"]


@pytest.mark.unit
class TestConfigureLogging:
    def test_json_output(self):
        stream = io.StringIO()
        root = logging.getLogger()
        previous_handlers, previous_level = root.handlers[:], root.level
        try:
            configure_logging("debug", stream=stream, logger_levels={"micro_search.noisy": "error"})
            logging.getLogger("micro_search.test").info("hello %s", "world")

            assert json.loads(stream.getvalue())["message"] == "hello world"
            assert root.level == logging.DEBUG
            assert logging.getLogger("micro_search.noisy").level == logging.ERROR
        finally:
            root.handlers[:] = previous_handlers
            root.setLevel(previous_level)
            logging.getLogger("micro_search.noisy").setLevel(logging.NOTSET)

    def test_plain_output(self):
        stream = io.StringIO()
        root = logging.getLogger()
        previous_handlers, previous_level = root.handlers[:], root.level
        try:
            handler = configure_logging("info", json_output=False, stream=stream)
            logging.getLogger("micro_search.test").warning("plain")

            assert not isinstance(handler.formatter, JsonFormatter)
            assert "WARNING [micro_search.test] plain" in stream.getvalue()
        finally:
            root.handlers[:] = previous_handlers
            root.setLevel(previous_level)


@pytest.mark.unit
class TestTraceContext:
    def test_get_trace_context_generates_ids(self, fresh_context):
        ctx = get_trace_context()

        assert len(ctx["trace_id"]) == 32
        assert len(ctx["span_id"]) == 16
        assert get_trace_context() is ctx

    def test_index_context_is_restored(self, fresh_context):
        set_trace_context("t" * 32, "s" * 16)

        with index_context("outer"), index_context("inner") as ctx:
            assert ctx["index"] == "inner"

        assert "index" not in get_trace_context()


@pytest.mark.unit
class TestTracing:
    def test_create_span_records_attributes(self, span_exporter):
        with create_span("microsearch.test", attributes={"microsearch.index": "books", "skipped": None}):
            pass

        (span,) = span_exporter.get_finished_spans()
        assert span.name == "microsearch.test"
        assert span.attributes["microsearch.index"] == "books"
        assert "skipped" not in span.attributes

    def test_create_span_records_errors(self, span_exporter):
        with pytest.raises(RuntimeError), create_span("microsearch.failing"):
            raise RuntimeError("broken")

        (span,) = span_exporter.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR
        assert any(event.name == "exception" for event in span.events)

    def test_create_span_updates_log_context(self, span_exporter, fresh_context):
        with create_span("microsearch.test") as span:
            expected = format(span.get_span_context().span_id, "016x")
            assert get_trace_context()["span_id"] == expected

    def test_engine_operations_are_traced(self, span_exporter, settings):
        engine = MicroSearch(MemoryBlobStore(), settings=settings, name="traced")
        engine.put({"id": "1", "title": "Pro Git"})
        engine.query("git")
        engine.commit()

        names = [span.name for span in span_exporter.get_finished_spans()]
        assert names == ["microsearch.put", "microsearch.query", "microsearch.commit"]


@pytest.mark.unit
class TestMetrics:
    def test_track_operation_counts_outcomes(self):
        labels = {"index": "metrics-test", "operation": "probe"}

        with track_operation(**labels):
            pass
        with pytest.raises(ValueError), track_operation(**labels):
            raise ValueError("nope")

        assert REGISTRY.get_sample_value("microsearch_operations_total", {**labels, "status": "ok"}) == 1.0
        assert REGISTRY.get_sample_value("microsearch_operations_total", {**labels, "status": "error"}) == 1.0
        assert REGISTRY.get_sample_value("microsearch_operation_latency_seconds_count", labels) == 2.0

    def test_engine_updates_gauges(self, settings):
        engine = MicroSearch(MemoryBlobStore(), settings=settings, name="gauge-test")
        engine.put_many([{"id": "1"}, {"id": "2"}])
        engine.commit()

        assert REGISTRY.get_sample_value("microsearch_documents", {"index": "gauge-test"}) == 2.0
        assert REGISTRY.get_sample_value("microsearch_snapshot_bytes", {"index": "gauge-test"}) == len(
            engine.store.read()
        )

    def test_gauge_set_is_absolute(self):
        DOCUMENT_COUNT.labels(index="gauge-absolute").set(5)
        DOCUMENT_COUNT.labels(index="gauge-absolute").set(3)

        assert REGISTRY.get_sample_value("microsearch_documents", {"index": "gauge-absolute"}) == 3.0

    def test_metrics_exposition(self):
        with track_operation("exposition", "probe"):
            pass

        assert b"microsearch_operation_latency_seconds" in get_metrics()
        assert get_metrics_content_type().startswith("text/plain")


@pytest.mark.unit
def test_setup_observability_uses_settings(settings, monkeypatch):
    monkeypatch.setitem(tracing_module._tracer_holder, "tracer", None)
    monkeypatch.setitem(tracing_module._tracer_holder, "provider", None)
    stream = io.StringIO()
    root = logging.getLogger()
    previous_handlers, previous_level = root.handlers[:], root.level
    try:
        handler = setup_observability(settings.model_copy(update={"log_level": "warning"}), stream=stream)

        assert isinstance(handler.formatter, JsonFormatter)
        assert root.level == logging.WARNING
        assert tracing_module._tracer_holder["tracer"] is not None
    finally:
        root.handlers[:] = previous_handlers
        root.setLevel(previous_level)
