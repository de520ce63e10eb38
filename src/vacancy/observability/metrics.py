"""
Market Metrics Collection.

In-process counters, gauges and histograms describing market activity:
claims won and lost, searches, releases, exits and claim round-trip latency.

Each ``Market`` owns its own ``MetricsRegistry``; there is no process-wide
registry, so two markets in one process (or two tests) never share counts.

Usage:
    registry = MetricsRegistry()
    metrics = MarketMetrics(registry)

    metrics.claims_acquired.increment()
    metrics.claim_latency.observe(0.0012)

    print(registry.format_prometheus())
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class MetricType(str, Enum):
    """Supported metric types."""

    COUNTER = "counter"
    HISTOGRAM = "histogram"
    GAUGE = "gauge"


@dataclass
class CounterMetric:
    """A counter metric that only increments."""

    name: str
    description: str = ""
    _value: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def increment(self, amount: int = 1) -> None:
        """Increment the counter."""
        if amount < 0:
            raise ValueError("Counters can only increase")
        with self._lock:
            self._value += amount

    def get_value(self) -> int:
        """Get the current counter value."""
        with self._lock:
            return self._value

    def reset(self) -> None:
        """Reset the counter to zero."""
        with self._lock:
            self._value = 0


@dataclass
class HistogramMetric:
    """A histogram metric for tracking value distributions."""

    name: str
    description: str = ""
    buckets: list[float] = field(
        default_factory=lambda: [0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
    )
    _values: list[float] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def observe(self, value: float) -> None:
        """Record an observation."""
        with self._lock:
            self._values.append(value)

    def get_count(self) -> int:
        with self._lock:
            return len(self._values)

    def get_sum(self) -> float:
        with self._lock:
            return sum(self._values)

    def get_bucket_counts(self) -> dict[float, int]:
        """Get cumulative histogram bucket counts."""
        with self._lock:
            counts: dict[float, int] = dict.fromkeys(self.buckets, 0)
            for value in self._values:
                for bucket in self.buckets:
                    if value <= bucket:
                        counts[bucket] += 1
            return counts

    def reset(self) -> None:
        with self._lock:
            self._values.clear()


@dataclass
class GaugeMetric:
    """A gauge metric that can go up and down."""

    name: str
    description: str = ""
    _value: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def set(self, value: float) -> None:
        with self._lock:
            self._value = value

    def increment(self, amount: float = 1.0) -> None:
        with self._lock:
            self._value += amount

    def decrement(self, amount: float = 1.0) -> None:
        with self._lock:
            self._value -= amount

    def get_value(self) -> float:
        with self._lock:
            return self._value

    def reset(self) -> None:
        with self._lock:
            self._value = 0.0


class MetricsRegistry:
    """Get-or-create store for named metrics."""

    def __init__(self) -> None:
        self._counters: dict[str, CounterMetric] = {}
        self._histograms: dict[str, HistogramMetric] = {}
        self._gauges: dict[str, GaugeMetric] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, description: str = "") -> CounterMetric:
        """Get or create a counter metric."""
        with self._lock:
            if name not in self._counters:
                self._counters[name] = CounterMetric(name=name, description=description)
            return self._counters[name]

    def histogram(
        self,
        name: str,
        description: str = "",
        buckets: Optional[list[float]] = None,
    ) -> HistogramMetric:
        """Get or create a histogram metric."""
        with self._lock:
            if name not in self._histograms:
                histogram = HistogramMetric(name=name, description=description)
                if buckets:
                    histogram.buckets = sorted(buckets)
                self._histograms[name] = histogram
            return self._histograms[name]

    def gauge(self, name: str, description: str = "") -> GaugeMetric:
        """Get or create a gauge metric."""
        with self._lock:
            if name not in self._gauges:
                self._gauges[name] = GaugeMetric(name=name, description=description)
            return self._gauges[name]

    def get_all_metrics(self) -> dict[str, dict[str, Any]]:
        """Get all metrics in a format suitable for export."""
        metrics: dict[str, dict[str, Any]] = {}

        with self._lock:
            for name, counter in self._counters.items():
                metrics[name] = {
                    "type": MetricType.COUNTER.value,
                    "value": counter.get_value(),
                    "description": counter.description,
                }

            for name, histogram in self._histograms.items():
                metrics[name] = {
                    "type": MetricType.HISTOGRAM.value,
                    "count": histogram.get_count(),
                    "sum": histogram.get_sum(),
                    "buckets": histogram.get_bucket_counts(),
                    "description": histogram.description,
                }

            for name, gauge in self._gauges.items():
                metrics[name] = {
                    "type": MetricType.GAUGE.value,
                    "value": gauge.get_value(),
                    "description": gauge.description,
                }

        return metrics

    def summary(self) -> dict[str, Any]:
        """Get all metrics as a timestamped summary dictionary."""
        return {
            "timestamp": datetime.now().isoformat(),
            "metrics": self.get_all_metrics(),
        }

    def format_prometheus(self) -> str:
        """Format all metrics in Prometheus text format."""
        lines: list[str] = []

        for name, data in self.get_all_metrics().items():
            if data.get("description"):
                lines.append(f"# HELP {name} {data['description']}")
            lines.append(f"# TYPE {name} {data['type']}")

            if data["type"] == MetricType.HISTOGRAM.value:
                for bucket, count in data["buckets"].items():
                    lines.append(f'{name}_bucket{{le="{bucket}"}} {count}')
                lines.append(f'{name}_bucket{{le="+Inf"}} {data["count"]}')
                lines.append(f"{name}_count {data['count']}")
                lines.append(f"{name}_sum {data['sum']}")
            else:
                lines.append(f"{name} {data['value']}")

        return "\n".join(lines) + "\n"

    def reset_all(self) -> None:
        """Reset all metrics."""
        with self._lock:
            for counter in self._counters.values():
                counter.reset()
            for histogram in self._histograms.values():
                histogram.reset()
            for gauge in self._gauges.values():
                gauge.reset()


class MarketMetrics:
    """Named market metrics bound to one ``MetricsRegistry``."""

    def __init__(self, registry: MetricsRegistry) -> None:
        self.registry = registry
        self.claims_acquired = registry.counter(
            "vacancy_claims_acquired_total", "Occupy requests answered with acquired"
        )
        self.claims_contended = registry.counter(
            "vacancy_claims_contended_total", "Occupy requests answered with already_occupied"
        )
        self.searches = registry.counter(
            "vacancy_searches_total", "Ticks on which an actor searched for a vacancy"
        )
        self.empty_searches = registry.counter(
            "vacancy_empty_searches_total", "Searches that found no vacancy"
        )
        self.status_timeouts = registry.counter(
            "vacancy_status_timeouts_total", "Status requests that timed out after a claim"
        )
        self.vacates = registry.counter(
            "vacancy_vacates_total", "Vacate requests processed by resources"
        )
        self.actor_exits = registry.counter(
            "vacancy_actor_exits_total", "Actors that left the market by the exit coin flip"
        )
        self.active_actors = registry.gauge(
            "vacancy_active_actors", "Actors whose tick loop is running"
        )
        self.claim_latency = registry.histogram(
            "vacancy_claim_latency_seconds", "Round-trip time of occupy requests"
        )


__all__ = [
    "CounterMetric",
    "GaugeMetric",
    "HistogramMetric",
    "MarketMetrics",
    "MetricType",
    "MetricsRegistry",
]
