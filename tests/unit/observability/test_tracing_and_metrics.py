"""Tests for span creation and the Prometheus/OpenTelemetry metric bridge."""

from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram
import pytest

from ngram_search.observability import metrics as metrics_module
from ngram_search.observability import tracing as tracing_module
from ngram_search.observability.context import get_trace_context
from ngram_search.observability.metrics import MetricBridge, get_metrics, init_metrics, track_latency
from ngram_search.observability.tracing import create_span, init_tracing


@pytest.fixture
def span_exporter(monkeypatch):
    monkeypatch.setattr(tracing_module, "_tracer_holder", {"tracer": None})
    exporter = InMemorySpanExporter()
    init_tracing(span_processors=[SimpleSpanProcessor(exporter)])
    return exporter


@pytest.fixture
def metric_reader(monkeypatch):
    monkeypatch.setattr(metrics_module, "_meter_holder", {"meter": None, "provider": None})
    reader = InMemoryMetricReader()
    init_metrics(metric_readers=[reader])
    return reader


@pytest.fixture
def registry():
    return CollectorRegistry()


def _otel_points(reader, name):
    data = reader.get_metrics_data()
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                if metric.name == name:
                    return list(metric.data.data_points)
    return []


class TestTracing:
    def test_span_records_attributes_and_updates_log_context(self, span_exporter):
        with create_span("search.query", attributes={"index": "docs"}) as span:
            span_id = format(span.get_span_context().span_id, "016x")
            assert get_trace_context()["span_id"] == span_id

        (finished,) = span_exporter.get_finished_spans()
        assert finished.name == "search.query"
        assert finished.attributes["index"] == "docs"

    def test_errors_mark_span(self, span_exporter):
        with pytest.raises(RuntimeError), create_span("search.upsert"):
            raise RuntimeError("boom")

        (finished,) = span_exporter.get_finished_spans()
        assert finished.status.status_code is StatusCode.ERROR
        assert any(event.name == "exception" for event in finished.events)


class TestMetricBridge:
    def test_unknown_kind_is_rejected(self, registry):
        counter = Counter("bridge_bad_total", "bad", ["k"], registry=registry)
        with pytest.raises(ValueError, match="Unknown metric kind"):
            MetricBridge(counter, otel_name="bad", otel_description="bad", otel_kind="summary")

    def test_counter_records_in_both_systems(self, registry, metric_reader):
        bridge = MetricBridge(
            Counter("bridge_ops_total", "ops", ["op"], registry=registry),
            otel_name="bridge_ops_total",
            otel_description="ops",
            otel_kind="counter",
        )
        bridge.labels(op="upsert").inc()
        bridge.labels(op="upsert").inc(2)

        assert registry.get_sample_value("bridge_ops_total", {"op": "upsert"}) == 3
        (point,) = _otel_points(metric_reader, "bridge_ops_total")
        assert point.value == 3

    def test_gauge_reports_deltas_to_otel(self, registry, metric_reader):
        bridge = MetricBridge(
            Gauge("bridge_docs", "docs", ["index"], registry=registry),
            otel_name="bridge_docs",
            otel_description="docs",
            otel_kind="gauge",
        )
        bridge.labels(index="a").set(5)
        bridge.labels(index="a").set(3)

        assert registry.get_sample_value("bridge_docs", {"index": "a"}) == 3
        (point,) = _otel_points(metric_reader, "bridge_docs")
        assert point.value == 3

    def test_track_latency_observes_even_on_error(self, registry, metric_reader):
        bridge = MetricBridge(
            Histogram("bridge_latency_seconds", "latency", ["index"], registry=registry),
            otel_name="bridge_latency_seconds",
            otel_description="latency",
            otel_kind="histogram",
        )
        with pytest.raises(KeyError), track_latency(bridge, index="a"):
            raise KeyError("x")

        assert registry.get_sample_value("bridge_latency_seconds_count", {"index": "a"}) == 1


def test_default_registry_exposes_index_metrics():
    output = get_metrics().decode("utf-8")
    assert "search_latency_seconds" in output
    assert "index_mutations_total" in output
