"""
Human-readable and JSON renderings of a run summary.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional, Sequence

from chatload.metrics.thresholds import ThresholdResult


def format_summary(
    summary: Mapping[str, Mapping[str, Any]],
    threshold_results: Sequence[ThresholdResult] = (),
    *,
    title: str = "RUN SUMMARY",
    info: Optional[Mapping[str, Any]] = None,
) -> str:
    """
    Format a metrics summary and threshold outcomes as text.

    Args:
        summary: MetricsRegistry.summary() output.
        threshold_results: Results from evaluate_thresholds().
        title: Heading line.
        info: Extra key/value lines shown under the heading.

    Returns:
        Formatted string suitable for printing.
    """
    lines = ["=" * 60, title, "=" * 60]
    for key, value in (info or {}).items():
        lines.append(f"{key}: {value}")

    sections = (
        ("counter", "--- Counters ---"),
        ("gauge", "--- Gauges ---"),
        ("rate", "--- Rates ---"),
        ("trend", "--- Trends (ms) ---"),
    )
    for kind, heading in sections:
        names = sorted(n for n, s in summary.items() if s.get("type") == kind)
        if not names:
            continue
        lines.append("")
        lines.append(heading)
        for name in names:
            lines.append(f"  {name}: {_describe(summary[name])}")

    if threshold_results:
        failed = [r for r in threshold_results if not r.passed]
        lines.append("")
        lines.append("--- Thresholds ---")
        for result in threshold_results:
            lines.append(f"  {result.describe()}")
        lines.append("")
        if failed:
            lines.append(f"RESULT: FAILED ({len(failed)} of {len(threshold_results)} thresholds breached)")
        else:
            lines.append(f"RESULT: PASSED ({len(threshold_results)} thresholds)")

    lines.append("")
    return "\n".join(lines)


def summary_json(
    summary: Mapping[str, Mapping[str, Any]],
    threshold_results: Sequence[ThresholdResult] = (),
    **extra: Any,
) -> str:
    payload: Dict[str, Any] = dict(extra)
    payload["metrics"] = summary
    payload["thresholds"] = [r.to_dict() for r in threshold_results]
    payload["passed"] = all(r.passed for r in threshold_results)
    return json.dumps(payload, ensure_ascii=True, indent=2, default=str)


def _describe(data: Mapping[str, Any]) -> str:
    kind = data.get("type")
    if kind == "counter":
        return _fmt(data["count"], 0)
    if kind == "gauge":
        return f"value={_fmt(data['value'], 0)} min={_fmt(data['min'], 0)} max={_fmt(data['max'], 0)}"
    if kind == "rate":
        rate = data["rate"]
        shown = "N/A" if rate is None else f"{rate:.2%}"
        return f"{shown} ({data['passes']} of {data['count']})"
    return (
        f"count={data['count']} avg={_fmt(data['avg'])} med={_fmt(data['med'])} "
        f"p95={_fmt(data['p(95)'])} p99={_fmt(data['p(99)'])} max={_fmt(data['max'])}"
    )


def _fmt(val: Optional[float], decimals: int = 1) -> str:
    """Format a value, handling None."""
    if val is None:
        return "N/A"
    return f"{val:.{decimals}f}"
