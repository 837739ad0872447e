from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Mapping, Optional

from models import TransactionType
from schemas import AccountRecord, TransactionRecord

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "MXN": "MX$",
    "CAD": "CA$",
    "JPY": "¥",
    "BTC": "₿",
}

ZERO_DECIMAL_CURRENCIES = frozenset({"JPY"})

# Budget name -> raw transaction categories that count towards it.
DEFAULT_BUDGET_MAPPING: dict[str, list[str]] = {
    "Food": ["Groceries", "Restaurants", "Dining", "Coffee"],
    "Transportation": ["Gas", "Fuel", "Rideshare", "Public Transit", "Parking"],
    "Housing": ["Rent", "Mortgage", "Home Maintenance"],
    "Utilities": ["Electricity", "Water", "Internet", "Phone"],
    "Entertainment": ["Streaming", "Games", "Movies", "Subscriptions"],
    "Shopping": ["Clothing", "Electronics"],
    "Health": ["Pharmacy", "Medical", "Fitness"],
    "Salary": ["Payroll", "Paycheck"],
}


class UnknownCurrency(KeyError):
    """Raised when a currency code has no entry in the rate table."""

    def __init__(self, code: str) -> None:
        super().__init__(code)
        self.code = code

    def __str__(self) -> str:
        return f"No exchange rate configured for currency {self.code!r}"


def round_half_up(value: float, places: int = 0) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round2(value: float) -> float:
    """Round half-up to whole cents, via Decimal to avoid binary float drift."""
    return round_half_up(value, 2)


def _rate_for(code: str, rates: Mapping[str, float]) -> float:
    try:
        rate = rates[code]
    except KeyError:
        raise UnknownCurrency(code) from None
    if not rate:
        raise UnknownCurrency(code)
    return rate


def convert_amount(
    amount: float, from_code: str, to_code: str, rates: Mapping[str, float]
) -> float:
    """Convert through the pivot currency of ``rates`` (units per 1 pivot).

    Full float precision is kept; round with :func:`round2` when presenting.
    """
    if from_code == to_code:
        return amount
    from_rate = _rate_for(from_code, rates)
    to_rate = _rate_for(to_code, rates)
    return amount / from_rate * to_rate


def settlement_currency(txn: TransactionRecord) -> str:
    return txn.account_currency or txn.currency


def format_currency(
    value: float,
    currency_code: str = "USD",
    *,
    compact: bool = False,
    privacy: bool = False,
) -> str:
    if privacy:
        return "••••••••"
    if currency_code == "BTC":
        return f"₿{value:.4f}"

    digits = 0 if compact or currency_code in ZERO_DECIMAL_CURRENCIES else 2
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(abs(value))).quantize(quantum, rounding=ROUND_HALF_UP)
    body = f"{rounded:,.{digits}f}"
    symbol = CURRENCY_SYMBOLS.get(currency_code)
    text = f"{symbol}{body}" if symbol else f"{currency_code} {body}"
    if value < 0 and rounded != 0:
        return f"-{text}"
    return text


def categories_for_budget(
    budget_name: str, mapping: Optional[Mapping[str, Iterable[str]]] = None
) -> frozenset[str]:
    mapping = DEFAULT_BUDGET_MAPPING if mapping is None else mapping
    mapped = mapping.get(budget_name) or ()
    return frozenset((*mapped, budget_name))


def reconcile_account_balance(
    account: AccountRecord, transactions: Iterable[TransactionRecord]
) -> float:
    """Replay an account's transactions on top of its initial balance.

    Amounts are already in the account's settlement currency. Credits add
    and debits subtract, which also holds for negative liability balances.
    """
    net_change = 0.0
    for txn in transactions:
        if txn.account_id != account.id:
            continue
        if txn.type == TransactionType.credit:
            net_change += txn.numeric_amount
        elif txn.type == TransactionType.debit:
            net_change -= txn.numeric_amount
    return round2(account.initial_balance + net_change)


def balance_drift(
    account: AccountRecord, transactions: Iterable[TransactionRecord]
) -> float:
    return round2(account.balance - reconcile_account_balance(account, transactions))
