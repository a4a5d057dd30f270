"""
Pass/fail thresholds evaluated over aggregated metrics at run end.

Expressions follow the familiar load-testing syntax:

    p(95)<2000      trend percentile
    avg<500         trend average (also med, min, max, count)
    rate<0.01       rate ratio
    count>=1        counter total
    value>0         gauge last value

A metric that recorded nothing passes: there is no evidence of a breach.
"""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from chatload.exceptions import ChatloadConfigError

_OPERATORS: Dict[str, Callable[[float, float], bool]] = {
    "<=": operator.le,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    ">": operator.gt,
}

_EXPRESSION = re.compile(
    r"^\s*(?P<stat>p\(\s*(?P<pct>\d+(?:\.\d+)?)\s*\)|avg|med|min|max|count|rate|value)"
    r"\s*(?P<op><=|>=|==|!=|<|>)\s*(?P<bound>-?\d+(?:\.\d+)?)\s*$"
)

# Aggregates each metric kind exposes; percentiles apply to trends only.
_STATS_BY_KIND: Dict[str, frozenset] = {
    "counter": frozenset({"count"}),
    "gauge": frozenset({"value", "min", "max"}),
    "trend": frozenset({"count", "min", "max", "avg", "med"}),
    "rate": frozenset({"rate", "count"}),
}


@dataclass(frozen=True)
class Threshold:
    """
    One parsed threshold condition on a named metric.

    Attributes:
        metric: Metric name in the registry.
        expression: Original expression text.
        stat: Aggregate key in the metric summary ("p(95)", "avg", "rate", ...).
        op: Comparison operator text.
        bound: Right-hand side of the comparison.
    """

    metric: str
    expression: str
    stat: str
    op: str
    bound: float
    percentile: Optional[float] = None

    @classmethod
    def parse(cls, metric: str, expression: str) -> "Threshold":
        match = _EXPRESSION.match(expression)
        if match is None:
            raise ChatloadConfigError(
                f"Invalid threshold expression for {metric}: {expression!r}",
                code="invalid_threshold",
                details={"metric": metric, "expression": expression},
            )
        pct = match.group("pct")
        stat = match.group("stat")
        percentile = float(pct) if pct is not None else None
        if percentile is not None:
            if not 0 <= percentile <= 100:
                raise ChatloadConfigError(
                    f"Percentile out of range in {expression!r}",
                    code="invalid_threshold",
                    details={"metric": metric, "expression": expression},
                )
            stat = f"p({pct})"
        return cls(
            metric=metric,
            expression=expression.strip(),
            stat=stat,
            op=match.group("op"),
            bound=float(match.group("bound")),
            percentile=percentile,
        )

    def applies_to(self, kind: str) -> bool:
        if self.percentile is not None:
            return kind == "trend"
        return self.stat in _STATS_BY_KIND.get(kind, ())

    def observed(self, metric_summary: Mapping[str, Any], registry: Any = None) -> Optional[float]:
        """Extract the observed aggregate from a metric summary."""
        kind = metric_summary.get("type")
        if self.percentile is not None:
            if kind != "trend":
                return None
            if self.stat in metric_summary:
                return metric_summary[self.stat]
            if registry is not None:
                return registry.trend(self.metric).percentile(self.percentile)
            return None
        if self.stat == "rate":
            return metric_summary.get("rate")
        if self.stat == "count":
            return metric_summary.get("count")
        return metric_summary.get(self.stat)

    def check(self, observed: Optional[float]) -> bool:
        if observed is None:
            return True
        return _OPERATORS[self.op](observed, self.bound)


@dataclass(frozen=True)
class ThresholdResult:
    threshold: Threshold
    observed: Optional[float]
    passed: bool

    def describe(self) -> str:
        shown = "no data" if self.observed is None else f"{self.observed:.4g}"
        mark = "PASS" if self.passed else "FAIL"
        return f"[{mark}] {self.threshold.metric}: {self.threshold.expression} (observed {shown})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric": self.threshold.metric,
            "expression": self.threshold.expression,
            "observed": self.observed,
            "passed": self.passed,
        }


def parse_thresholds(table: Mapping[str, Sequence[str]]) -> List[Threshold]:
    """
    Parse a {metric: [expression, ...]} mapping.

    Raises:
        ChatloadConfigError: On any malformed expression.
    """
    parsed: List[Threshold] = []
    for metric, expressions in table.items():
        if isinstance(expressions, str):
            expressions = [expressions]
        for expression in expressions:
            parsed.append(Threshold.parse(metric, expression))
    return parsed


def evaluate_thresholds(
    thresholds: Sequence[Threshold],
    registry: Any,
) -> List[ThresholdResult]:
    """
    Evaluate thresholds against a MetricsRegistry.

    Metrics that were never created count as "no data" and pass.

    Raises:
        ChatloadConfigError: A threshold asks for an aggregate its metric's
            kind does not have, such as rate<0.01 on a trend.
    """
    summary = registry.summary()
    results: List[ThresholdResult] = []
    for threshold in thresholds:
        metric_summary = summary.get(threshold.metric)
        if metric_summary is not None and not threshold.applies_to(metric_summary["type"]):
            raise ChatloadConfigError(
                f"Threshold {threshold.expression!r} does not apply to {metric_summary['type']} metric {threshold.metric}",
                code="threshold_kind_mismatch",
                details={"metric": threshold.metric, "expression": threshold.expression, "kind": metric_summary["type"]},
            )
        observed = (
            threshold.observed(metric_summary, registry)
            if metric_summary is not None
            else None
        )
        results.append(
            ThresholdResult(
                threshold=threshold,
                observed=observed,
                passed=threshold.check(observed),
            )
        )
    return results
