"""Prometheus metrics for the feed engine."""

from typing import Dict, List, Optional, Type, Union

from prometheus_client import Counter, Gauge, Histogram

Collector = Union[Counter, Gauge, Histogram]


class MetricsRegistry:
    """Namespaced registry for Prometheus collectors.

    Every collector is exported as ``<namespace>_<name>``. Asking for the same
    name twice returns the collector created first instead of tripping
    prometheus_client's duplicate check.
    """

    def __init__(self, namespace: str = "feed_engine"):
        self.namespace = namespace
        self._metrics: Dict[str, Collector] = {}

    def _register(
        self,
        kind: Type[Collector],
        name: str,
        description: str,
        labels: Optional[List[str]],
    ) -> Collector:
        full_name = f"{self.namespace}_{name}"
        if full_name not in self._metrics:
            self._metrics[full_name] = kind(full_name, description, labels or [])
        return self._metrics[full_name]

    def counter(self, name: str, description: str, labels: List[str] = None) -> Counter:
        return self._register(Counter, name, description, labels)

    def gauge(self, name: str, description: str, labels: List[str] = None) -> Gauge:
        return self._register(Gauge, name, description, labels)

    def histogram(self, name: str, description: str, labels: List[str] = None) -> Histogram:
        return self._register(Histogram, name, description, labels)


# Global metrics registry
metrics = MetricsRegistry()

# Ranking metrics
RANKING_REQUESTS = metrics.counter("ranking_requests", "Ranking service calls by outcome", ["status"])
RANKING_FALLBACKS = metrics.counter(
    "ranking_fallbacks", "Composition cycles that used the shuffled fallback order"
)

# Composition metrics
COMPOSITION_CYCLES = metrics.counter("composition_cycles", "Composition cycles by outcome", ["outcome"])
COMPOSITION_DURATION = metrics.histogram(
    "composition_duration_seconds", "Time taken by one composition cycle"
)
FEED_SIZE = metrics.gauge("feed_size", "Items in the published feed")

# Interaction metrics
INTERACTION_MUTATIONS = metrics.counter(
    "interaction_mutations", "Interaction store mutations by action", ["action"]
)


def start_metrics_server(port: int = 8000):
    """Start a Prometheus metrics server on the specified port.

    Args:
        port: Port number for metrics server
    """
    from prometheus_client import start_http_server

    start_http_server(port)
