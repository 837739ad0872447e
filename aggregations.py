from __future__ import annotations

from datetime import date
from typing import Iterable, Mapping, Optional, Sequence

from models import BudgetType, TransactionType
from money import categories_for_budget, convert_amount, settlement_currency
from schemas import (
    AccountRecord,
    BudgetRecord,
    BusinessEntityRecord,
    EntityMetrics,
    InvestmentRecord,
    TransactionRecord,
)

BUDGET_EXCLUDED_CATEGORIES = frozenset({"Transfer"})


def compute_net_worth(
    accounts: Iterable[AccountRecord],
    investments: Iterable[InvestmentRecord],
    base_currency: str,
    rates: Mapping[str, float],
) -> float:
    """Signed account balances plus investment values, in ``base_currency``."""
    accounts_net = sum(
        convert_amount(a.balance, a.currency, base_currency, rates) for a in accounts
    )
    investments_net = sum(
        convert_amount(i.current_value, i.currency, base_currency, rates)
        for i in investments
    )
    return accounts_net + investments_net


def _same_month(value: date, reference: date) -> bool:
    return value.year == reference.year and value.month == reference.month


def compute_budget_spent_monthly(
    budgets: Sequence[BudgetRecord],
    transactions: Sequence[TransactionRecord],
    base_currency: str,
    rates: Mapping[str, float],
    *,
    as_of: Optional[date] = None,
    mapping: Optional[Mapping[str, Iterable[str]]] = None,
) -> list[BudgetRecord]:
    """Return copies of ``budgets`` with ``spent`` for the month of ``as_of``.

    Categories match exactly (no substring matching). Refunds reduce spend
    on expense budgets and debits reduce income budgets; the result is never
    below zero.
    """
    as_of = as_of or date.today()
    month_txns = [
        t
        for t in transactions
        if _same_month(t.date, as_of) and t.category not in BUDGET_EXCLUDED_CATEGORIES
    ]

    enriched: list[BudgetRecord] = []
    for budget in budgets:
        categories = categories_for_budget(budget.category, mapping)
        if budget.type == BudgetType.income:
            adds, subtracts = TransactionType.credit, TransactionType.debit
        else:
            adds, subtracts = TransactionType.debit, TransactionType.credit

        spent = 0.0
        for txn in month_txns:
            if txn.category not in categories:
                continue
            amount = convert_amount(
                txn.numeric_amount, settlement_currency(txn), base_currency, rates
            )
            if txn.type == adds:
                spent += amount
            elif txn.type == subtracts:
                spent -= amount
        enriched.append(budget.model_copy(update={"spent": max(0.0, spent)}))
    return enriched


def entity_totals(
    transactions: Iterable[TransactionRecord],
    base_currency: str,
    rates: Mapping[str, float],
) -> EntityMetrics:
    revenue = 0.0
    expenses = 0.0
    for txn in transactions:
        amount = convert_amount(
            txn.numeric_amount, settlement_currency(txn), base_currency, rates
        )
        if txn.type == TransactionType.credit:
            revenue += amount
        elif txn.type == TransactionType.debit:
            expenses += amount
    profit = revenue - expenses
    margin = profit / revenue * 100 if revenue > 0 else 0.0
    return EntityMetrics(
        revenue=revenue, expenses=expenses, profit=profit, margin=margin, trend=0.0
    )


def compute_business_metrics(
    entities: Sequence[BusinessEntityRecord],
    transactions: Sequence[TransactionRecord],
    base_currency: str,
    rates: Mapping[str, float],
    *,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> list[BusinessEntityRecord]:
    """Revenue, expenses, profit and margin per entity.

    All-time unless a ``start``/``end`` window is given. ``trend`` is left at
    zero; comparing windows is up to the caller.
    """
    windowed = [
        t
        for t in transactions
        if t.business_id
        and (start is None or t.date >= start)
        and (end is None or t.date <= end)
    ]
    enriched: list[BusinessEntityRecord] = []
    for entity in entities:
        entity_txns = [t for t in windowed if t.business_id == entity.id]
        metrics = entity_totals(entity_txns, base_currency, rates)
        enriched.append(entity.model_copy(update={"metrics": metrics}))
    return enriched
