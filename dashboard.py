from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Mapping, Sequence

from health import CASH
from models import BudgetType, TransactionType
from money import convert_amount, settlement_currency
from periods import month_bounds, shift_months
from schemas import BudgetRecord, TransactionRecord

SPEND_EXCLUDED_CATEGORIES = frozenset({"Adjustment"})


@dataclass(frozen=True)
class BudgetPacing:
    spent_this_month: float
    total_budget_limit: float
    left_to_spend: float
    progress: float
    safe_limit: float


@dataclass(frozen=True)
class SpendingTrend:
    current_month_spent: float
    last_month_spent: float
    diff: float
    percent: float


def _debits_between(
    transactions: Iterable[TransactionRecord],
    start: date,
    end: date,
    base_currency: str,
    rates: Mapping[str, float],
) -> float:
    return sum(
        convert_amount(t.numeric_amount, settlement_currency(t), base_currency, rates)
        for t in transactions
        if t.type == TransactionType.debit
        and start <= t.date <= end
        and t.category not in SPEND_EXCLUDED_CATEGORIES
    )


def due_recurring_debits(
    transactions: Iterable[TransactionRecord], start: date, end: date
) -> list[TransactionRecord]:
    due = [
        t
        for t in transactions
        if t.is_recurring
        and t.type == TransactionType.debit
        and t.next_recurring_date is not None
        and start <= t.next_recurring_date <= end
    ]
    due.sort(key=lambda t: (t.next_recurring_date, t.id))
    return due


def upcoming_bills(
    transactions: Iterable[TransactionRecord],
    *,
    as_of: date,
    days: int = 7,
    limit: int = 3,
) -> list[TransactionRecord]:
    return due_recurring_debits(transactions, as_of, as_of + timedelta(days=days))[:limit]


def upcoming_bills_total(
    transactions: Iterable[TransactionRecord],
    base_currency: str,
    rates: Mapping[str, float],
    *,
    as_of: date,
) -> float:
    """Recurring debits still due between ``as_of`` and the end of its month."""
    _, month_end = month_bounds(as_of)
    return sum(
        convert_amount(t.numeric_amount, settlement_currency(t), base_currency, rates)
        for t in due_recurring_debits(transactions, as_of, month_end)
    )


def budget_pacing(
    budgets: Sequence[BudgetRecord],
    transactions: Sequence[TransactionRecord],
    assets: Mapping[str, float],
    net_worth: float,
    base_currency: str,
    rates: Mapping[str, float],
    *,
    as_of: date,
) -> BudgetPacing:
    """How much can still be spent this month without breaking plan or cash.

    Budget limits are expressed in the base currency.
    """
    month_start, _ = month_bounds(as_of)
    spent = _debits_between(transactions, month_start, as_of, base_currency, rates)

    expense_limit = sum(b.limit for b in budgets if b.type != BudgetType.income)
    income_target = sum(b.limit for b in budgets if b.type == BudgetType.income)
    if expense_limit > 0 and income_target > 0:
        sustainable = min(expense_limit, income_target)
    else:
        sustainable = max(expense_limit, income_target)

    bills = upcoming_bills_total(transactions, base_currency, rates, as_of=as_of)
    deficit = abs(net_worth) if net_worth < 0 else 0.0
    reality = max(0.0, assets.get(CASH, 0.0) - deficit - bills)

    safe_limit = min(sustainable, reality) if sustainable > 0 else reality
    if safe_limit > 0:
        progress = spent / safe_limit * 100
    else:
        progress = 100.0 if spent > 0 else 0.0

    return BudgetPacing(
        spent_this_month=spent,
        total_budget_limit=expense_limit,
        left_to_spend=max(0.0, safe_limit - spent),
        progress=progress,
        safe_limit=safe_limit,
    )


def spending_trend(
    transactions: Sequence[TransactionRecord],
    base_currency: str,
    rates: Mapping[str, float],
    *,
    as_of: date,
) -> SpendingTrend:
    month_start, month_end = month_bounds(as_of)
    last_start, last_end = month_bounds(shift_months(month_start, -1))
    current = _debits_between(transactions, month_start, month_end, base_currency, rates)
    last = _debits_between(transactions, last_start, last_end, base_currency, rates)
    diff = current - last
    percent = diff / last * 100 if last > 0 else 0.0
    return SpendingTrend(
        current_month_spent=current, last_month_spent=last, diff=diff, percent=percent
    )
