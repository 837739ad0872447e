from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Mapping, Sequence

from models import AccountType, InvestmentType, TransactionType
from money import convert_amount, round_half_up, settlement_currency
from schemas import AccountRecord, InvestmentRecord, TransactionRecord

CASH = "Cash"
DEBT = "Debt"

ACCOUNT_ASSET_CLASS: dict[AccountType, str] = {
    AccountType.checking: CASH,
    AccountType.savings: CASH,
    AccountType.business: "Business",
    AccountType.crypto: "Crypto",
    AccountType.investment: "Equities",
    AccountType.credit: DEBT,
}

INVESTMENT_ASSET_CLASS: dict[InvestmentType, str] = {
    InvestmentType.stock: "Equities",
    InvestmentType.etf: "Equities",
    InvestmentType.bond: "Equities",
    InvestmentType.real_estate: "Real Estate",
    InvestmentType.crypto: "Crypto",
    InvestmentType.startup: "Venture",
}

# Bookkeeping entries that are not real income or spending.
CASH_FLOW_EXCLUDED_CATEGORIES = frozenset(
    {"Transfer", "Credit Card Payment", "Adjustment", "Starting Balance"}
)
CASH_FLOW_EXCLUDED_NAMES = frozenset({"Starting Balance", "Balance Adjustment"})

RUNWAY_TARGET_MONTHS = 6
SAVINGS_RATE_TARGET = 0.40
DIVERSITY_TARGET_CLASSES = 4
NEW_ACCOUNT_MIN_TRANSACTIONS = 5

LIQUIDITY_MAX = 30
SAVINGS_MAX = 40
DEBT_MAX = 20
DIVERSITY_MAX = 10


@dataclass(frozen=True)
class HealthDetails:
    liquidity: int
    savings: int
    debt: int
    diversity: int
    months_runway: float
    savings_rate_pct: int
    debt_ratio_pct: int
    class_count: int


@dataclass(frozen=True)
class HealthScore:
    score: int
    details: HealthDetails
    is_new: bool


def assets_by_type(
    accounts: Iterable[AccountRecord],
    investments: Iterable[InvestmentRecord],
    base_currency: str,
    rates: Mapping[str, float],
) -> dict[str, float]:
    breakdown: dict[str, float] = {}
    for account in accounts:
        asset_class = ACCOUNT_ASSET_CLASS.get(account.type, "Other")
        breakdown[asset_class] = breakdown.get(asset_class, 0.0) + convert_amount(
            account.balance, account.currency, base_currency, rates
        )
    for inv in investments:
        asset_class = INVESTMENT_ASSET_CLASS.get(inv.type, "Other")
        breakdown[asset_class] = breakdown.get(asset_class, 0.0) + convert_amount(
            inv.current_value, inv.currency, base_currency, rates
        )
    return breakdown


def total_positive_assets(assets: Mapping[str, float]) -> float:
    return sum(v for k, v in assets.items() if v > 0 and k != DEBT)


def is_cash_flow(txn: TransactionRecord) -> bool:
    return (
        txn.category not in CASH_FLOW_EXCLUDED_CATEGORIES
        and txn.name not in CASH_FLOW_EXCLUDED_NAMES
    )


def cash_flow_window(
    transactions: Iterable[TransactionRecord],
    base_currency: str,
    rates: Mapping[str, float],
    *,
    as_of: date,
    days: int = 30,
) -> tuple[float, float]:
    """Income and expense over the trailing ``days`` ending on ``as_of``."""
    window_start = as_of - timedelta(days=days)
    income = 0.0
    expense = 0.0
    for txn in transactions:
        if not (window_start <= txn.date <= as_of) or not is_cash_flow(txn):
            continue
        amount = convert_amount(
            txn.numeric_amount, settlement_currency(txn), base_currency, rates
        )
        if txn.type == TransactionType.credit:
            income += amount
        elif txn.type == TransactionType.debit:
            expense += amount
    return income, expense


def monthly_surplus(
    transactions: Iterable[TransactionRecord],
    base_currency: str,
    rates: Mapping[str, float],
    *,
    as_of: date,
) -> float:
    income, expense = cash_flow_window(
        transactions, base_currency, rates, as_of=as_of
    )
    return income - expense


def compute_health_score(
    assets: Mapping[str, float],
    transactions: Sequence[TransactionRecord],
    base_currency: str,
    rates: Mapping[str, float],
    *,
    as_of: date,
) -> HealthScore:
    """Weighted 0-100 score from liquidity, savings, debt and diversity.

    Each component is clamped to ``[0, max]`` before summing. Accounts with
    fewer than five transactions and no assets are reported as new with a
    score of zero instead of being judged.
    """
    cash = assets.get(CASH, 0.0)
    total_assets = total_positive_assets(assets)
    total_debt = abs(assets.get(DEBT, 0.0))

    income_30, expense_30 = cash_flow_window(
        transactions, base_currency, rates, as_of=as_of
    )

    months_runway = cash / max(expense_30, 1.0)
    liquidity = _clamp(months_runway / RUNWAY_TARGET_MONTHS * LIQUIDITY_MAX, LIQUIDITY_MAX)

    savings_rate = (income_30 - expense_30) / income_30 if income_30 > 0 else 0.0
    savings = _clamp(savings_rate / SAVINGS_RATE_TARGET * SAVINGS_MAX, SAVINGS_MAX)

    debt_ratio = total_debt / total_assets if total_assets > 0 else 0.0
    debt = _clamp(DEBT_MAX - debt_ratio * DEBT_MAX, DEBT_MAX)

    class_count = len([k for k, v in assets.items() if v > 0 and k != DEBT])
    diversity = _clamp(class_count / DIVERSITY_TARGET_CLASSES * DIVERSITY_MAX, DIVERSITY_MAX)

    total = int(round_half_up(liquidity + savings + debt + diversity))
    is_new = len(transactions) < NEW_ACCOUNT_MIN_TRANSACTIONS and total_assets == 0

    details = HealthDetails(
        liquidity=int(round_half_up(liquidity)),
        savings=int(round_half_up(savings)),
        debt=int(round_half_up(debt)),
        diversity=int(round_half_up(diversity)),
        months_runway=round_half_up(months_runway, 1),
        savings_rate_pct=int(round_half_up(savings_rate * 100)),
        debt_ratio_pct=int(round_half_up(debt_ratio * 100)),
        class_count=class_count,
    )
    return HealthScore(score=0 if is_new else total, details=details, is_new=is_new)


def _clamp(value: float, upper: float) -> float:
    return min(upper, max(0.0, value))
