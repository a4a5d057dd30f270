from __future__ import annotations

import pytest

from chatload.exceptions import ChatloadConfigError
from chatload.metrics import MetricsRegistry, evaluate_thresholds, parse_thresholds
from chatload.metrics.thresholds import Threshold


class TestParse:
    def test_percentile_expression(self):
        t = Threshold.parse("http_req_duration", "p(95)<2000")
        assert t.stat == "p(95)"
        assert t.op == "<"
        assert t.bound == 2000
        assert t.percentile == 95

    def test_rate_expression(self):
        t = Threshold.parse("http_req_failed", "rate<0.01")
        assert (t.stat, t.op, t.bound) == ("rate", "<", 0.01)

    @pytest.mark.parametrize("expression", ["p(95)<<1", "rate", "p(101)<5", "median<3", ""])
    def test_malformed_expression_raises(self, expression):
        with pytest.raises(ChatloadConfigError) as exc_info:
            Threshold.parse("m", expression)
        assert exc_info.value.code == "invalid_threshold"

    def test_single_string_is_accepted(self):
        parsed = parse_thresholds({"m": "avg<5"})
        assert len(parsed) == 1


class TestEvaluate:
    def test_pass_and_breach(self):
        registry = MetricsRegistry()
        for value in (100.0, 200.0, 3000.0):
            registry.trend("message_send_latency").add(value)
        registry.rate("message_success_rate").add(True)
        registry.rate("message_success_rate").add(False)

        results = evaluate_thresholds(
            parse_thresholds(
                {
                    "message_send_latency": ["p(50)<500", "max<1000"],
                    "message_success_rate": ["rate>0.99"],
                }
            ),
            registry,
        )
        passed = {(r.threshold.metric, r.threshold.expression): r.passed for r in results}
        assert passed[("message_send_latency", "p(50)<500")] is True
        assert passed[("message_send_latency", "max<1000")] is False
        assert passed[("message_success_rate", "rate>0.99")] is False

    def test_percentile_outside_summary_keys(self):
        registry = MetricsRegistry()
        for value in range(1, 11):
            registry.trend("latency").add(float(value))
        [result] = evaluate_thresholds(parse_thresholds({"latency": ["p(50)<6"]}), registry)
        assert result.observed == pytest.approx(5.5)
        assert result.passed

    def test_missing_metric_passes(self):
        [result] = evaluate_thresholds(
            parse_thresholds({"ai_timeout_rate": ["rate<0.15"]}),
            MetricsRegistry(),
        )
        assert result.observed is None
        assert result.passed
        assert "no data" in result.describe()

    def test_tagged_metric_names(self):
        registry = MetricsRegistry()
        registry.trend("http_req_duration{endpoint:login}").add(900.0)
        [result] = evaluate_thresholds(
            parse_thresholds({"http_req_duration{endpoint:login}": ["p(95)<500"]}),
            registry,
        )
        assert not result.passed
        assert result.to_dict()["observed"] == 900.0

    @pytest.mark.parametrize(
        ("metric", "expression"),
        [("latency", "rate<0.01"), ("requests", "p(95)<100"), ("users", "avg<3")],
    )
    def test_stat_of_the_wrong_kind_raises(self, metric, expression):
        registry = MetricsRegistry()
        registry.trend("latency").add(10.0)
        registry.counter("requests").add()
        registry.gauge("users").add(2)

        with pytest.raises(ChatloadConfigError) as exc_info:
            evaluate_thresholds(parse_thresholds({metric: [expression]}), registry)
        assert exc_info.value.code == "threshold_kind_mismatch"
        assert exc_info.value.details["metric"] == metric
