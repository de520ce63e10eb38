"""
Observability for the resource market.

Metrics are plain in-process objects owned by a ``Market``; see
``vacancy.observability.metrics``.

Example:
    from vacancy.observability import MarketMetrics, MetricsRegistry

    metrics = MarketMetrics(MetricsRegistry())
    metrics.searches.increment()
"""

from .metrics import (
    CounterMetric,
    GaugeMetric,
    HistogramMetric,
    MarketMetrics,
    MetricsRegistry,
    MetricType,
)

__all__ = [
    "CounterMetric",
    "GaugeMetric",
    "HistogramMetric",
    "MarketMetrics",
    "MetricType",
    "MetricsRegistry",
]
