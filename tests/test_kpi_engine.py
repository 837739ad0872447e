from datetime import date

import pytest

from kpi_engine import (
    MetricReading,
    calculate_metric_value,
    compute_business_health,
    evaluate_metric,
    readings_for,
)
from models import TransactionType
from schemas import BusinessMetricConfig, TransactionRecord


def _config(metric_id: str = "revenue", **overrides) -> BusinessMetricConfig:
    values = {
        "business_id": "shop",
        "metric_id": metric_id,
        "target_value": 100,
        "warning_threshold": 50,
    }
    values.update(overrides)
    return BusinessMetricConfig(**values)


def _txn(txn_id: str, amount: float, txn_type: TransactionType, category: str = "Sales"):
    return TransactionRecord(
        id=txn_id,
        account_id="acc-1",
        name=txn_id,
        numeric_amount=amount,
        date=date(2025, 8, 1),
        category=category,
        type=txn_type,
        business_id="shop",
    )


def test_warning_segment_is_linear():
    result = evaluate_metric(75, _config())
    assert result.status == "warning"
    assert result.score == 75


def test_higher_is_better_boundaries():
    config = _config()
    assert evaluate_metric(100, config).score == 100
    assert evaluate_metric(100, config).status == "healthy"
    assert evaluate_metric(50, config).score == 50
    assert evaluate_metric(25, config).status == "critical"
    assert evaluate_metric(25, config).score == 25
    assert evaluate_metric(-10, config).score == 0


def test_higher_is_better_with_critical_floor():
    config = _config(critical_threshold=40)
    assert evaluate_metric(45, config).score == 25
    assert evaluate_metric(30, config).score == 0


def test_lower_is_better_defaults_ceiling_to_twice_warning():
    config = _config(
        "refund_rate", target_value=5, warning_threshold=10, is_higher_better=False
    )
    assert evaluate_metric(4, config).status == "healthy"
    assert evaluate_metric(7.5, config).score == 75
    assert evaluate_metric(15, config).status == "critical"
    assert evaluate_metric(15, config).score == 25
    assert evaluate_metric(25, config).score == 0


def test_explicit_zero_critical_threshold_is_respected():
    config = _config(
        "net_burn",
        target_value=-20,
        warning_threshold=-10,
        critical_threshold=0,
        is_higher_better=False,
    )
    assert evaluate_metric(-5, config).status == "critical"
    assert evaluate_metric(-5, config).score == 25
    assert evaluate_metric(1, config).score == 0


def test_lower_is_better_with_critical_ceiling():
    config = _config(
        "refund_rate",
        target_value=5,
        warning_threshold=10,
        critical_threshold=15,
        is_higher_better=False,
    )
    assert evaluate_metric(12.5, config).score == 25
    assert evaluate_metric(16, config).score == 0


def test_missing_thresholds_are_neutral():
    config = BusinessMetricConfig(metric_id="nps")
    result = evaluate_metric(3, config)
    assert result.status == "neutral"
    assert result.score == 100


def test_calculated_metric_values():
    txns = [
        _txn("sale1", 600, TransactionType.credit),
        _txn("sale2", 400, TransactionType.credit),
        _txn("stock", 300, TransactionType.debit, category="Inventory"),
        _txn("refund", 50, TransactionType.debit, category="Refund"),
        _txn("ads", 150, TransactionType.debit, category="Marketing"),
    ]
    assert calculate_metric_value("revenue", txns) == 1000
    assert calculate_metric_value("expenses", txns) == 500
    assert calculate_metric_value("net_profit", txns) == 500
    assert calculate_metric_value("gross_profit", txns) == 700
    assert calculate_metric_value("gross_margin", txns) == 70
    assert calculate_metric_value("net_margin", txns) == 50
    assert calculate_metric_value("aov", txns) == 500
    assert calculate_metric_value("refund_rate", txns) == 5
    assert calculate_metric_value("unknown", txns) == 0
    assert calculate_metric_value("net_margin", []) == 0


def test_business_health_ignores_inactive_metrics():
    readings = [
        MetricReading(config=_config("revenue", is_active=False), value=0),
        MetricReading(config=_config("net_profit"), value=40),
    ]
    health = compute_business_health(readings)
    assert health.overall_score == 40
    assert health.status == "critical"
    assert health.business_id == "shop"
    assert health.top_detractors == ["net_profit"]


def test_business_health_weights_and_detractor_order():
    readings = [
        MetricReading(config=_config("zeta", weight=2), value=60),
        MetricReading(config=_config("alpha"), value=60),
        MetricReading(config=_config("beta", weight=0), value=100),
        MetricReading(config=_config("gamma"), value=30),
        MetricReading(config=_config("delta"), value=10),
    ]
    health = compute_business_health(readings, business_id="shop")
    # (60*2 + 60 + 100 + 30 + 10) / 6 = 53.33
    assert health.overall_score == 53
    assert health.status == "at_risk"
    assert health.top_detractors == ["delta", "gamma", "alpha"]
    assert health.summary == (
        "4 issues detected. Primary concerns: delta, gamma, alpha, zeta."
    )


def test_business_health_without_active_metrics_is_healthy():
    health = compute_business_health([], business_id="shop")
    assert health.overall_score == 100
    assert health.status == "healthy"
    assert health.top_detractors == []
    assert health.summary == "All systems operational. Performance targets met."


def test_readings_for_uses_manual_values_for_custom_metrics():
    configs = [_config("revenue"), _config("nps"), _config("churn")]
    txns = [_txn("sale", 80, TransactionType.credit)]
    readings = readings_for(configs, txns, {"nps": 42})
    assert [r.value for r in readings] == [80, 42, 0]


@pytest.mark.parametrize("value,expected", [(100, 100), (90, 90), (62.5, 63)])
def test_scores_round_half_up(value, expected):
    assert evaluate_metric(value, _config()).score == expected
