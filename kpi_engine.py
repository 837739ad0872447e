from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Sequence

from models import TransactionType
from money import round_half_up
from schemas import BusinessMetricConfig, TransactionRecord

COGS_CATEGORIES = ("Inventory", "COGS")
REFUND_CATEGORY = "Refund"

DETRACTOR_THRESHOLD = 70
MAX_DETRACTORS = 3

CALCULATED_METRICS = frozenset(
    {
        "revenue",
        "expenses",
        "net_profit",
        "gross_profit",
        "gross_margin",
        "net_margin",
        "aov",
        "refund_rate",
    }
)


@dataclass(frozen=True)
class MetricEvaluation:
    status: str  # "healthy" | "warning" | "critical" | "neutral"
    score: int


@dataclass(frozen=True)
class MetricReading:
    config: BusinessMetricConfig
    value: float


@dataclass(frozen=True)
class BusinessHealth:
    business_id: str
    overall_score: int
    status: str  # "healthy" | "at_risk" | "critical"
    top_detractors: list[str] = field(default_factory=list)
    summary: str = ""
    trend: float = 0.0


def _sum(
    transactions: Iterable[TransactionRecord],
    txn_type: TransactionType,
    category: Optional[str] = None,
) -> float:
    return sum(
        t.numeric_amount
        for t in transactions
        if t.type == txn_type and (category is None or t.category == category)
    )


def calculate_metric_value(
    metric_id: str, transactions: Sequence[TransactionRecord]
) -> float:
    """Value of a built-in metric; unknown or manual metrics are 0."""
    revenue = _sum(transactions, TransactionType.credit)
    expenses = _sum(transactions, TransactionType.debit)

    if metric_id == "revenue":
        return revenue
    if metric_id == "expenses":
        return expenses
    if metric_id == "net_profit":
        return revenue - expenses
    if metric_id in ("gross_profit", "gross_margin"):
        cogs = sum(_sum(transactions, TransactionType.debit, c) for c in COGS_CATEGORIES)
        gross_profit = revenue - cogs
        if metric_id == "gross_profit":
            return gross_profit
        return gross_profit / revenue * 100 if revenue > 0 else 0.0
    if metric_id == "net_margin":
        return (revenue - expenses) / revenue * 100 if revenue > 0 else 0.0
    if metric_id == "aov":
        orders = len([t for t in transactions if t.type == TransactionType.credit])
        return revenue / orders if orders > 0 else 0.0
    if metric_id == "refund_rate":
        refunds = _sum(transactions, TransactionType.debit, REFUND_CATEGORY)
        return refunds / revenue * 100 if revenue > 0 else 0.0
    return 0.0


def evaluate_metric(value: float, config: BusinessMetricConfig) -> MetricEvaluation:
    """Score ``value`` against target/warning/critical thresholds.

    Scores interpolate linearly: 100 at target, 50 at warning and 0 at the
    critical floor (0) or ceiling (twice the warning level) when no critical
    threshold is configured. An explicit critical threshold of 0 is used as is.
    """
    target = config.target_value
    warning = config.warning_threshold
    if target is None or warning is None:
        return MetricEvaluation(status="neutral", score=100)

    if config.is_higher_better:
        if value >= target:
            return MetricEvaluation(status="healthy", score=100)
        if value >= warning:
            score = 50 + _ratio(value - warning, target - warning) * 50
            return MetricEvaluation(status="warning", score=_round_score(score))
        floor = 0.0 if config.critical_threshold is None else config.critical_threshold
        if value < floor:
            score = 0.0
        else:
            score = _ratio(value - floor, warning - floor) * 50
        return MetricEvaluation(status="critical", score=_round_score(score))

    if value <= target:
        return MetricEvaluation(status="healthy", score=100)
    if value <= warning:
        score = 50 + _ratio(warning - value, warning - target) * 50
        return MetricEvaluation(status="warning", score=_round_score(score))
    ceiling = (
        warning * 2 if config.critical_threshold is None else config.critical_threshold
    )
    if value > ceiling:
        score = 0.0
    else:
        score = _ratio(ceiling - value, ceiling - warning) * 50
    return MetricEvaluation(status="critical", score=_round_score(score))


def _ratio(progress: float, span: float) -> float:
    if span <= 0:
        return 0.0
    return progress / span


def _round_score(score: float) -> int:
    return int(round_half_up(min(100.0, max(0.0, score))))


def compute_business_health(
    readings: Sequence[MetricReading], *, business_id: Optional[str] = None
) -> BusinessHealth:
    """Weighted average of active metric scores plus a short diagnosis.

    Inactive metrics are left out entirely. Detractors are active metrics
    scoring under 70, lowest first, ties broken by ``metric_id``.
    """
    total_weight = 0.0
    weighted_sum = 0.0
    detractors: list[tuple[int, str]] = []

    for reading in readings:
        config = reading.config
        if not config.is_active:
            continue
        evaluation = evaluate_metric(reading.value, config)
        weight = config.weight if config.weight > 0 else 1.0
        weighted_sum += evaluation.score * weight
        total_weight += weight
        if evaluation.score < DETRACTOR_THRESHOLD:
            detractors.append((evaluation.score, config.metric_id))

    overall = (
        int(round_half_up(weighted_sum / total_weight)) if total_weight > 0 else 100
    )
    if overall < 50:
        status = "critical"
    elif overall < 80:
        status = "at_risk"
    else:
        status = "healthy"

    detractors.sort()
    if detractors:
        concerns = ", ".join(metric_id.replace("_", " ") for _, metric_id in detractors)
        summary = f"{len(detractors)} issues detected. Primary concerns: {concerns}."
    else:
        summary = "All systems operational. Performance targets met."

    if business_id is None:
        business_id = readings[0].config.business_id if readings else ""

    return BusinessHealth(
        business_id=business_id,
        overall_score=overall,
        status=status,
        top_detractors=[metric_id for _, metric_id in detractors[:MAX_DETRACTORS]],
        summary=summary,
    )


def readings_for(
    configs: Iterable[BusinessMetricConfig],
    transactions: Sequence[TransactionRecord],
    manual_values: Optional[Mapping[str, float]] = None,
) -> list[MetricReading]:
    """Pair each config with its current value.

    Built-in metrics are calculated from ``transactions``; anything else is
    looked up in ``manual_values`` and defaults to 0.
    """
    manual_values = manual_values or {}
    readings: list[MetricReading] = []
    for config in configs:
        if config.metric_id in CALCULATED_METRICS:
            value = calculate_metric_value(config.metric_id, transactions)
        else:
            value = manual_values.get(config.metric_id, 0.0)
        readings.append(MetricReading(config=config, value=value))
    return readings
