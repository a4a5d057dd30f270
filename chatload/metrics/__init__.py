"""
Run metrics: counters, gauges, trends and rates with threshold evaluation.

Usage:
    from chatload.metrics import MetricsRegistry, parse_thresholds, evaluate_thresholds

    registry = MetricsRegistry()
    registry.trend("message_send_latency").add(120.0)
    registry.rate("message_success_rate").add(True)

    thresholds = parse_thresholds({"message_send_latency": ["p(95)<1500"]})
    results = evaluate_thresholds(thresholds, registry)
    print(all(r.passed for r in results))
"""

from chatload.metrics.collector import (
    Counter,
    Gauge,
    MetricsRegistry,
    Rate,
    Trend,
)
from chatload.metrics.events import (
    ActionEvent,
    CollectingEventReporter,
    EventReporter,
    FanoutEventReporter,
    JsonlEventReporter,
    LoggingEventReporter,
    ThresholdEvent,
)
from chatload.metrics.report import format_summary, summary_json
from chatload.metrics.thresholds import (
    Threshold,
    ThresholdResult,
    evaluate_thresholds,
    parse_thresholds,
)

__all__ = [
    "Counter",
    "Gauge",
    "MetricsRegistry",
    "Rate",
    "Trend",
    "ActionEvent",
    "ThresholdEvent",
    "EventReporter",
    "LoggingEventReporter",
    "CollectingEventReporter",
    "JsonlEventReporter",
    "FanoutEventReporter",
    "format_summary",
    "summary_json",
    "Threshold",
    "ThresholdResult",
    "evaluate_thresholds",
    "parse_thresholds",
]
