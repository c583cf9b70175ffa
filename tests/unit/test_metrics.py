"""Tests for the metrics registry."""
from prometheus_client import REGISTRY, Counter, Histogram

from feed_engine.metrics import COMPOSITION_CYCLES, FEED_SIZE, MetricsRegistry, metrics


def test_collectors_are_namespaced_and_reused():
    registry = MetricsRegistry(namespace="feed_engine_test")

    first = registry.counter("events", "Test events", ["kind"])
    second = registry.counter("events", "Test events", ["kind"])
    first.labels(kind="swipe").inc()

    assert first is second
    assert isinstance(first, Counter)
    assert REGISTRY.get_sample_value("feed_engine_test_events_total", {"kind": "swipe"}) == 1.0


def test_histogram_registration():
    registry = MetricsRegistry(namespace="feed_engine_test_timing")

    histogram = registry.histogram("step_seconds", "Step duration")
    histogram.observe(0.2)

    assert isinstance(histogram, Histogram)
    assert REGISTRY.get_sample_value("feed_engine_test_timing_step_seconds_count") == 1.0


def test_global_registry_returns_engine_metrics():
    cycles = metrics.counter("composition_cycles", "Composition cycles by outcome", ["outcome"])

    assert cycles is COMPOSITION_CYCLES
    assert metrics.gauge("feed_size", "Items in the published feed") is FEED_SIZE


def test_engine_metrics_are_exported_under_namespace():
    FEED_SIZE.set(3)

    assert REGISTRY.get_sample_value("feed_engine_feed_size") == 3.0
