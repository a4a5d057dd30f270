"""
MetricsRegistry: process-wide counters, gauges, trends and rates for a run.

Thread-safe, in-memory collection with Prometheus-compatible export. One
registry is created per run and injected into every virtual user; nothing
in the engine reaches for a module-level global.
"""

from __future__ import annotations

import math
import threading
from typing import Any, Dict, List, Optional, Union


class Counter:
    """Thread-safe counter. Negative increments are allowed for gauge-style use."""

    kind = "counter"

    def __init__(self, name: str) -> None:
        self.name = name
        self._value = 0.0
        self._lock = threading.Lock()

    def add(self, amount: float = 1) -> None:
        with self._lock:
            self._value += amount

    def get(self) -> float:
        with self._lock:
            return self._value

    def summary(self) -> Dict[str, Any]:
        value = self.get()
        return {"type": self.kind, "count": value}


class Gauge:
    """Thread-safe gauge: last value plus running min and max."""

    kind = "gauge"

    def __init__(self, name: str) -> None:
        self.name = name
        self._value = 0.0
        self._min: Optional[float] = None
        self._max: Optional[float] = None
        self._lock = threading.Lock()

    def set(self, value: float) -> None:
        with self._lock:
            self._value = value
            self._min = value if self._min is None else min(self._min, value)
            self._max = value if self._max is None else max(self._max, value)

    def add(self, delta: float) -> None:
        with self._lock:
            value = self._value + delta
            self._value = value
            self._min = value if self._min is None else min(self._min, value)
            self._max = value if self._max is None else max(self._max, value)

    def get(self) -> float:
        with self._lock:
            return self._value

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "type": self.kind,
                "value": self._value,
                "min": self._min,
                "max": self._max,
            }


class Trend:
    """
    Thread-safe latency distribution (milliseconds).

    Keeps raw observations so percentiles are exact for the run.
    """

    kind = "trend"

    def __init__(self, name: str) -> None:
        self.name = name
        self._values: List[float] = []
        self._sum = 0.0
        self._lock = threading.Lock()

    def add(self, value: float) -> None:
        with self._lock:
            self._values.append(float(value))
            self._sum += value

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._values)

    def percentile(self, p: float) -> Optional[float]:
        with self._lock:
            ordered = sorted(self._values)
        return _percentile(ordered, p)

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            ordered = sorted(self._values)
            total = self._sum
        count = len(ordered)
        return {
            "type": self.kind,
            "count": count,
            "min": ordered[0] if ordered else None,
            "max": ordered[-1] if ordered else None,
            "avg": total / count if count else None,
            "med": _percentile(ordered, 50),
            "p(90)": _percentile(ordered, 90),
            "p(95)": _percentile(ordered, 95),
            "p(99)": _percentile(ordered, 99),
        }


class Rate:
    """Thread-safe ratio of true outcomes over all outcomes."""

    kind = "rate"

    def __init__(self, name: str) -> None:
        self.name = name
        self._passes = 0
        self._total = 0
        self._lock = threading.Lock()

    def add(self, outcome: Union[bool, int]) -> None:
        with self._lock:
            self._total += 1
            if outcome:
                self._passes += 1

    @property
    def total(self) -> int:
        with self._lock:
            return self._total

    def ratio(self) -> Optional[float]:
        with self._lock:
            if self._total == 0:
                return None
            return self._passes / self._total

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            passes = self._passes
            total = self._total
        return {
            "type": self.kind,
            "passes": passes,
            "fails": total - passes,
            "count": total,
            "rate": passes / total if total else None,
        }


Metric = Union[Counter, Gauge, Trend, Rate]


def _percentile(ordered: List[float], p: float) -> Optional[float]:
    """Linear interpolation between closest ranks on a sorted list."""
    if not ordered:
        return None
    if len(ordered) == 1:
        return ordered[0]
    rank = (p / 100.0) * (len(ordered) - 1)
    low = math.floor(rank)
    high = math.ceil(rank)
    if low == high:
        return ordered[int(rank)]
    fraction = rank - low
    return ordered[low] + (ordered[high] - ordered[low]) * fraction


class MetricsRegistry:
    """
    Named metrics for one run.

    Metrics are created on first use; asking for an existing name with a
    different kind is a programming error.

    Example:
        registry = MetricsRegistry()
        registry.counter("messages_sent").add()
        registry.trend("message_send_latency").add(123.0)
        registry.rate("message_success_rate").add(True)
        print(registry.summary()["message_send_latency"]["p(95)"])
    """

    def __init__(self) -> None:
        self._metrics: Dict[str, Metric] = {}
        self._lock = threading.Lock()

    def _get_or_create(self, name: str, cls: type) -> Any:
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = cls(name)
                self._metrics[name] = metric
            elif not isinstance(metric, cls):
                raise TypeError(
                    f"metric {name!r} is a {metric.kind}, not a {cls.kind}"
                )
            return metric

    def counter(self, name: str) -> Counter:
        return self._get_or_create(name, Counter)

    def gauge(self, name: str) -> Gauge:
        return self._get_or_create(name, Gauge)

    def trend(self, name: str) -> Trend:
        return self._get_or_create(name, Trend)

    def rate(self, name: str) -> Rate:
        return self._get_or_create(name, Rate)

    def get(self, name: str) -> Optional[Metric]:
        with self._lock:
            return self._metrics.get(name)

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._metrics)

    def summary(self) -> Dict[str, Dict[str, Any]]:
        """
        Aggregate every metric.

        Returns:
            Dict keyed by metric name. Trends report count/min/max/avg/med and
            p(90)/p(95)/p(99); rates report passes/fails/count/rate; counters
            report count; gauges report value/min/max.
        """
        with self._lock:
            metrics = list(self._metrics.values())
        return {metric.name: metric.summary() for metric in metrics}

    def prometheus_format(self, prefix: str = "chatload") -> str:
        """
        Export metrics in Prometheus text exposition format.

        Trends are exported as summaries with 0.5/0.9/0.95/0.99 quantiles.
        """
        lines: List[str] = []
        for name, data in sorted(self.summary().items()):
            metric_name = f"{prefix}_{name}"
            kind = data["type"]
            lines.append("")
            if kind == "counter":
                lines.append(f"# TYPE {metric_name}_total counter")
                lines.append(f"{metric_name}_total {data['count']}")
            elif kind == "gauge":
                lines.append(f"# TYPE {metric_name} gauge")
                lines.append(f"{metric_name} {data['value']}")
            elif kind == "rate":
                lines.append(f"# TYPE {metric_name} gauge")
                lines.append(f"{metric_name} {data['rate'] if data['rate'] is not None else 'NaN'}")
                lines.append(f"{metric_name}_count {data['count']}")
            else:
                lines.append(f"# TYPE {metric_name}_ms summary")
                for q, key in (("0.5", "med"), ("0.9", "p(90)"), ("0.95", "p(95)"), ("0.99", "p(99)")):
                    value = data[key]
                    lines.append(
                        f'{metric_name}_ms{{quantile="{q}"}} '
                        f"{value if value is not None else 'NaN'}"
                    )
                total = (data["avg"] or 0.0) * data["count"]
                lines.append(f"{metric_name}_ms_sum {total}")
                lines.append(f"{metric_name}_ms_count {data['count']}")
        return "\n".join(lines).lstrip("\n")
