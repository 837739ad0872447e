from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Mapping, Optional, Sequence

from aggregations import (
    compute_budget_spent_monthly,
    compute_business_metrics,
    compute_net_worth,
)
from health import HealthScore, assets_by_type, compute_health_score
from kpi_engine import COGS_CATEGORIES
from models import TransactionType
from money import convert_amount, format_currency, settlement_currency
from periods import Period, previous_period, resolve_period
from schemas import (
    AccountRecord,
    BudgetRecord,
    BusinessEntityRecord,
    InvestmentRecord,
    ReportParams,
    TransactionRecord,
)

UNCATEGORIZED = "Uncategorized"
TOP_CATEGORY_LIMIT = 10

QualityRule = Callable[[Sequence[TransactionRecord], date], Optional[str]]


@dataclass(frozen=True)
class MetricValue:
    value: float
    formatted: str
    currency: str
    delta: Optional[float] = None
    delta_value: Optional[float] = None


@dataclass(frozen=True)
class CategoryBreakdown:
    name: str
    value: float
    percentage: float
    transaction_count: int


@dataclass(frozen=True)
class EntityBreakdown:
    id: str
    name: str
    revenue: float
    expense: float
    profit: float
    margin: float
    trend: Optional[float] = None


@dataclass(frozen=True)
class ReportSummary:
    income: MetricValue
    expense: MetricValue
    net: MetricValue
    savings_rate: MetricValue
    net_worth: MetricValue
    liquid_assets: MetricValue
    invested_assets: MetricValue


@dataclass(frozen=True)
class BusinessSection:
    revenue: MetricValue
    cogs: MetricValue
    gross_profit: MetricValue
    expenses: MetricValue
    net_profit: MetricValue
    gross_margin: float
    net_margin: float
    by_entity: list[EntityBreakdown] = field(default_factory=list)


@dataclass(frozen=True)
class DataQuality:
    score: float
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ReportSnapshot:
    scope: str
    period: str
    currency: str
    date_range: Period
    previous_range: Period
    generated_at: str
    tx_count: int
    excluded_tx_count: int
    uncategorized_percent: float
    summary: ReportSummary
    top_expense_categories: list[CategoryBreakdown]
    top_income_categories: list[CategoryBreakdown]
    health: HealthScore
    budgets: list[BudgetRecord]
    data_quality: DataQuality
    business: Optional[BusinessSection] = None


@dataclass(frozen=True)
class _Totals:
    income: float
    expense: float
    business_revenue: float
    business_expense: float
    cogs: float

    @property
    def net(self) -> float:
        return self.income - self.expense

    @property
    def savings_rate(self) -> float:
        return self.net / self.income * 100 if self.income > 0 else 0.0

    @property
    def business_net(self) -> float:
        return self.business_revenue - self.business_expense


def _is_uncategorized(txn: TransactionRecord) -> bool:
    return not txn.category or txn.category == UNCATEGORIZED


def missing_category_rule(
    txns: Sequence[TransactionRecord], today: date
) -> Optional[str]:
    count = len([t for t in txns if _is_uncategorized(t)])
    if count:
        return f"{count} transactions missing category"
    return None


def zero_amount_rule(
    txns: Sequence[TransactionRecord], today: date
) -> Optional[str]:
    count = len([t for t in txns if t.numeric_amount == 0])
    if count:
        return f"{count} transactions with a zero amount"
    return None


def future_dated_rule(txns: Sequence[TransactionRecord], today: date) -> Optional[str]:
    count = len([t for t in txns if t.date > today])
    if count:
        return f"{count} transactions dated in the future"
    return None


DEFAULT_QUALITY_RULES: tuple[QualityRule, ...] = (
    missing_category_rule,
    zero_amount_rule,
    future_dated_rule,
)


def percent_change(current: float, previous: float) -> Optional[float]:
    if previous == 0:
        return None
    return (current - previous) / abs(previous) * 100


class ReportEngine:
    """Builds deterministic report snapshots from in-memory records.

    The engine never fetches anything: callers hand it the records and the
    rate table, and the same inputs always produce the same snapshot.
    """

    def __init__(
        self,
        *,
        transactions: Sequence[TransactionRecord],
        accounts: Sequence[AccountRecord],
        investments: Sequence[InvestmentRecord],
        business_entities: Sequence[BusinessEntityRecord],
        rates: Mapping[str, float],
        budgets: Sequence[BudgetRecord] = (),
        quality_rules: Sequence[QualityRule] = DEFAULT_QUALITY_RULES,
    ) -> None:
        self.transactions = transactions
        self.accounts = accounts
        self.investments = investments
        self.business_entities = business_entities
        self.budgets = budgets
        self.rates = rates
        self.quality_rules = quality_rules

    def generate(
        self,
        params: ReportParams,
        *,
        base_currency: str,
        today: Optional[date] = None,
        generated_at: Optional[str] = None,
    ) -> ReportSnapshot:
        today = today or date.today()
        currency = params.base_currency or base_currency
        window = resolve_period(params.period, params.start, params.end, today=today)
        prev_window = previous_period(window)

        current_txns = self._filter(params.scope, window)
        previous_txns = self._filter(params.scope, prev_window)
        current = self._totals(current_txns, currency)
        previous = self._totals(previous_txns, currency)

        def metric(cur: float, prev: float) -> MetricValue:
            return MetricValue(
                value=cur,
                formatted=format_currency(cur, currency),
                currency=currency,
                delta=percent_change(cur, prev),
                delta_value=cur - prev,
            )

        def percent_metric(cur: float, prev: float) -> MetricValue:
            return MetricValue(
                value=cur,
                formatted=f"{cur:.1f}%",
                currency=currency,
                delta=percent_change(cur, prev),
                delta_value=cur - prev,
            )

        def point(value: float) -> MetricValue:
            return MetricValue(
                value=value,
                formatted=format_currency(value, currency),
                currency=currency,
            )

        liquid = compute_net_worth(self.accounts, (), currency, self.rates)
        invested = compute_net_worth((), self.investments, currency, self.rates)

        summary = ReportSummary(
            income=metric(current.income, previous.income),
            expense=metric(current.expense, previous.expense),
            net=metric(current.net, previous.net),
            savings_rate=percent_metric(current.savings_rate, previous.savings_rate),
            net_worth=point(liquid + invested),
            liquid_assets=point(liquid),
            invested_assets=point(invested),
        )

        history = [t for t in self.transactions if t.date <= window.end]
        assets = assets_by_type(self.accounts, self.investments, currency, self.rates)
        health = compute_health_score(
            assets, history, currency, self.rates, as_of=window.end
        )
        budgets = compute_budget_spent_monthly(
            self.budgets, current_txns, currency, self.rates, as_of=window.end
        )

        uncategorized = len([t for t in current_txns if _is_uncategorized(t)])
        uncategorized_percent = (
            uncategorized / len(current_txns) * 100 if current_txns else 0.0
        )
        warnings = [
            message
            for message in (rule(current_txns, today) for rule in self.quality_rules)
            if message
        ]

        business = None
        if params.scope != "personal":
            business = BusinessSection(
                revenue=metric(current.business_revenue, previous.business_revenue),
                cogs=metric(current.cogs, previous.cogs),
                gross_profit=metric(
                    current.business_revenue - current.cogs,
                    previous.business_revenue - previous.cogs,
                ),
                expenses=metric(current.business_expense, previous.business_expense),
                net_profit=metric(current.business_net, previous.business_net),
                gross_margin=_margin(
                    current.business_revenue - current.cogs, current.business_revenue
                ),
                net_margin=_margin(current.business_net, current.business_revenue),
                by_entity=self._by_entity(
                    current_txns, previous_txns, window, prev_window, currency
                ),
            )

        return ReportSnapshot(
            scope=params.scope,
            period=window.slug,
            currency=currency,
            date_range=window,
            previous_range=prev_window,
            generated_at=generated_at or today.isoformat(),
            tx_count=len(current_txns),
            excluded_tx_count=len(self.transactions) - len(current_txns),
            uncategorized_percent=uncategorized_percent,
            summary=summary,
            top_expense_categories=self._top_categories(
                current_txns, TransactionType.debit, current.expense, currency
            ),
            top_income_categories=self._top_categories(
                current_txns, TransactionType.credit, current.income, currency
            ),
            health=health,
            budgets=budgets,
            data_quality=DataQuality(
                score=max(0.0, 100.0 - uncategorized_percent), warnings=warnings
            ),
            business=business,
        )

    def _filter(self, scope: str, window: Period) -> list[TransactionRecord]:
        selected: list[TransactionRecord] = []
        for txn in self.transactions:
            if not window.contains(txn.date):
                continue
            if scope == "personal" and txn.business_id:
                continue
            if scope == "business" and not txn.business_id:
                continue
            selected.append(txn)
        return selected

    def _amount(self, txn: TransactionRecord, currency: str) -> float:
        return convert_amount(
            txn.numeric_amount, settlement_currency(txn), currency, self.rates
        )

    def _totals(self, txns: Sequence[TransactionRecord], currency: str) -> _Totals:
        income = expense = revenue = business_expense = cogs = 0.0
        # Business transactions feed only the business totals.
        for txn in txns:
            amount = self._amount(txn, currency)
            if txn.business_id:
                if txn.type == TransactionType.credit:
                    revenue += amount
                else:
                    business_expense += amount
                    if txn.category in COGS_CATEGORIES:
                        cogs += amount
            elif txn.type == TransactionType.credit:
                income += amount
            else:
                expense += amount
        return _Totals(
            income=income,
            expense=expense,
            business_revenue=revenue,
            business_expense=business_expense,
            cogs=cogs,
        )

    def _top_categories(
        self,
        txns: Sequence[TransactionRecord],
        txn_type: TransactionType,
        total: float,
        currency: str,
    ) -> list[CategoryBreakdown]:
        values: dict[str, float] = {}
        counts: dict[str, int] = {}
        for txn in txns:
            if txn.type != txn_type or txn.business_id:
                continue
            name = txn.category or UNCATEGORIZED
            values[name] = values.get(name, 0.0) + self._amount(txn, currency)
            counts[name] = counts.get(name, 0) + 1
        ranked = sorted(values.items(), key=lambda item: (-item[1], item[0]))
        return [
            CategoryBreakdown(
                name=name,
                value=value,
                percentage=value / total * 100 if total > 0 else 0.0,
                transaction_count=counts[name],
            )
            for name, value in ranked[:TOP_CATEGORY_LIMIT]
        ]

    def _by_entity(
        self,
        current_txns: Sequence[TransactionRecord],
        previous_txns: Sequence[TransactionRecord],
        window: Period,
        prev_window: Period,
        currency: str,
    ) -> list[EntityBreakdown]:
        current = compute_business_metrics(
            self.business_entities,
            current_txns,
            currency,
            self.rates,
            start=window.start,
            end=window.end,
        )
        previous = {
            e.id: e.metrics
            for e in compute_business_metrics(
                self.business_entities,
                previous_txns,
                currency,
                self.rates,
                start=prev_window.start,
                end=prev_window.end,
            )
        }
        rows: list[EntityBreakdown] = []
        for entity in current:
            metrics = entity.metrics
            prev = previous.get(entity.id)
            rows.append(
                EntityBreakdown(
                    id=entity.id,
                    name=entity.name,
                    revenue=metrics.revenue,
                    expense=metrics.expenses,
                    profit=metrics.profit,
                    margin=metrics.margin,
                    trend=percent_change(metrics.revenue, prev.revenue if prev else 0.0),
                )
            )
        rows.sort(key=lambda r: (-r.revenue, r.id))
        return rows


def _margin(profit: float, revenue: float) -> float:
    return profit / revenue * 100 if revenue > 0 else 0.0
