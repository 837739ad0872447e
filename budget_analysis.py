from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Mapping, Optional, Sequence

from models import TransactionType
from money import convert_amount, settlement_currency
from periods import month_bounds, shift_months
from schemas import TransactionRecord

TIME_RANGES = ("6m", "ytd", "1y", "all")

SAVINGS_TARGET_PCT = 20
SPENDING_SWING = 0.10
NEEDS_SHARE = 0.50
WANTS_SHARE = 0.30
SAVINGS_SHARE = 0.20

INCOME_EXCLUDED_CATEGORIES = frozenset({"Adjustment", "Starting Balance"})
EXPENSE_EXCLUDED_CATEGORIES = frozenset({"Adjustment"})

# First match wins, so the order matters for names like "credit card gas".
SUGGESTION_RULES: tuple[tuple[re.Pattern[str], int], ...] = (
    (re.compile(r"housing|rent|mortgage|casa|hogar|alquiler|hipoteca"), 30),
    (re.compile(r"food|dining|grocery|groceries|comida|supermercado"), 15),
    (re.compile(r"transport|car|gas|fuel|uber|auto|transporte|gasolina"), 15),
    (re.compile(r"util|electric|water|bill|luz|agua|servicios"), 10),
    (re.compile(r"save|saving|invest|ahorro|inversion"), 20),
    (re.compile(r"debt|loan|credit|deuda|prestamo|credito"), 15),
    (
        re.compile(
            r"entertainment|fun|ocio|gaming|game|juegos|hobby|hobbies"
            r"|subscription|netflix|spotify"
        ),
        5,
    ),
    (re.compile(r"shopping|cloth|ropa|compras"), 5),
)


@dataclass(frozen=True)
class MonthlyStats:
    month: date
    label: str
    income: float
    expense: float

    @property
    def net(self) -> float:
        return self.income - self.expense

    @property
    def savings_rate(self) -> float:
        return self.net / self.income * 100 if self.income > 0 else 0.0


@dataclass(frozen=True)
class IdealAllocation:
    needs: float
    wants: float
    savings: float
    actual_savings: float


@dataclass(frozen=True)
class BudgetAnalysis:
    time_range: str
    history: list[MonthlyStats]
    ideal_allocation: IdealAllocation
    insights: list[str] = field(default_factory=list)

    @property
    def total_income(self) -> float:
        return sum(m.income for m in self.history)

    @property
    def total_expense(self) -> float:
        return sum(m.expense for m in self.history)


@dataclass(frozen=True)
class BudgetSuggestion:
    amount: float
    reason: str


def range_start(
    time_range: str, today: date, transactions: Sequence[TransactionRecord] = ()
) -> date:
    """First month covered by ``time_range``.

    ``all`` starts at the month of the oldest transaction, or the current
    month when there is none.
    """
    current = today.replace(day=1)
    if time_range == "6m":
        return shift_months(current, -5)
    if time_range == "ytd":
        return date(today.year, 1, 1)
    if time_range == "1y":
        return shift_months(current, -12)
    if time_range == "all":
        if not transactions:
            return current
        return min(t.date for t in transactions).replace(day=1)
    raise ValueError(f"Unknown time range: {time_range}")


def monthly_history(
    transactions: Sequence[TransactionRecord],
    base_currency: str,
    rates: Mapping[str, float],
    *,
    time_range: str = "6m",
    today: Optional[date] = None,
) -> list[MonthlyStats]:
    today = today or date.today()
    start = range_start(time_range, today, transactions)
    _, end = month_bounds(today)

    income: dict[date, float] = {}
    expense: dict[date, float] = {}
    month = start
    while month <= end:
        income[month] = 0.0
        expense[month] = 0.0
        month = shift_months(month, 1)

    for txn in transactions:
        if not start <= txn.date <= end:
            continue
        key = txn.date.replace(day=1)
        amount = convert_amount(
            txn.numeric_amount, settlement_currency(txn), base_currency, rates
        )
        if (
            txn.type == TransactionType.credit
            and txn.category not in INCOME_EXCLUDED_CATEGORIES
        ):
            income[key] += amount
        elif (
            txn.type == TransactionType.debit
            and txn.category not in EXPENSE_EXCLUDED_CATEGORIES
        ):
            expense[key] += amount

    return [
        MonthlyStats(
            month=key,
            label=key.strftime("%b %Y"),
            income=income[key],
            expense=expense[key],
        )
        for key in sorted(income)
    ]


def ideal_allocation(history: Sequence[MonthlyStats]) -> IdealAllocation:
    """50/30/20 split of average monthly income over ``history``."""
    months = len(history) or 1
    total_income = sum(m.income for m in history)
    total_expense = sum(m.expense for m in history)
    average_income = total_income / months
    return IdealAllocation(
        needs=average_income * NEEDS_SHARE,
        wants=average_income * WANTS_SHARE,
        savings=average_income * SAVINGS_SHARE,
        actual_savings=max(0.0, total_income - total_expense) / months,
    )


def spending_insights(history: Sequence[MonthlyStats]) -> list[str]:
    if len(history) < 2:
        return ["Not enough data for insights."]

    insights: list[str] = []
    last, previous = history[-1], history[-2]

    if last.expense > previous.expense * (1 + SPENDING_SWING):
        insights.append("Spending is up 10% compared to last month.")
    elif last.expense < previous.expense * (1 - SPENDING_SWING):
        insights.append("Great job! Spending is down compared to last month.")

    if last.savings_rate < SAVINGS_TARGET_PCT:
        rate = round(last.savings_rate)
        insights.append(
            f"Your savings rate ({rate}%) is below the recommended {SAVINGS_TARGET_PCT}%."
        )
    else:
        insights.append(
            f"You are hitting the {SAVINGS_TARGET_PCT}% savings target! Keep it up."
        )

    expenses = [m.expense for m in history]
    low, high = min(expenses), max(expenses)
    if high > low * 2:
        insights.append(
            f"Your monthly spending is highly volatile ({low:.0f} - {high:.0f}). "
            "Try to smooth out irregular expenses."
        )
    return insights


def analyze_budget(
    transactions: Sequence[TransactionRecord],
    base_currency: str,
    rates: Mapping[str, float],
    *,
    time_range: str = "6m",
    today: Optional[date] = None,
) -> BudgetAnalysis:
    history = monthly_history(
        transactions, base_currency, rates, time_range=time_range, today=today
    )
    return BudgetAnalysis(
        time_range=time_range,
        history=history,
        ideal_allocation=ideal_allocation(history),
        insights=spending_insights(history),
    )


def _format_total(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def smart_suggestion(category: str, projected_income: float) -> Optional[BudgetSuggestion]:
    """Suggested limit for a budget named ``category``, or None."""
    if not projected_income:
        return None
    name = category.lower()
    for pattern, percent in SUGGESTION_RULES:
        if pattern.search(name):
            return BudgetSuggestion(
                amount=projected_income * percent / 100,
                reason=f"{percent}% of ${_format_total(projected_income)} Income",
            )
    return None
