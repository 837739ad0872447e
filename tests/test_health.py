from datetime import date, timedelta

from health import (
    CASH,
    DEBT,
    assets_by_type,
    cash_flow_window,
    compute_health_score,
    monthly_surplus,
)
from models import TransactionType
from schemas import AccountRecord, InvestmentRecord, TransactionRecord

RATES = {"USD": 1.0, "EUR": 0.5}
TODAY = date(2025, 8, 31)


def _txn(
    txn_id: str,
    amount: float,
    txn_type: TransactionType,
    days_ago: int = 1,
    category: str = "General",
    name: str = "Payment",
) -> TransactionRecord:
    return TransactionRecord(
        id=txn_id,
        account_id="acc-1",
        name=name,
        numeric_amount=amount,
        date=TODAY - timedelta(days=days_ago),
        category=category,
        type=txn_type,
    )


def test_assets_by_type_buckets_accounts_and_investments():
    accounts = [
        AccountRecord(id="a1", type="checking", balance=1000),
        AccountRecord(id="a2", type="savings", balance=50, currency="EUR"),
        AccountRecord(id="a3", type="credit", balance=-400),
        AccountRecord(id="a4", type="business", balance=300),
    ]
    investments = [
        InvestmentRecord(id="i1", type="etf", current_value=700),
        InvestmentRecord(id="i2", type="real_estate", current_value=9000),
        InvestmentRecord(id="i3", type="commodity", current_value=20),
    ]
    assets = assets_by_type(accounts, investments, "USD", RATES)
    assert assets == {
        CASH: 1100,
        DEBT: -400,
        "Business": 300,
        "Equities": 700,
        "Real Estate": 9000,
        "Other": 20,
    }


def test_cash_flow_window_excludes_bookkeeping_entries():
    txns = [
        _txn("pay", 3000, TransactionType.credit),
        _txn("rent", 1000, TransactionType.debit),
        _txn("move", 500, TransactionType.debit, category="Transfer"),
        _txn("card", 200, TransactionType.debit, category="Credit Card Payment"),
        _txn("open", 5000, TransactionType.credit, name="Starting Balance"),
        _txn("old", 700, TransactionType.debit, days_ago=45),
    ]
    assert cash_flow_window(txns, "USD", RATES, as_of=TODAY) == (3000, 1000)
    assert monthly_surplus(txns, "USD", RATES, as_of=TODAY) == 2000


def test_health_score_components():
    assets = {CASH: 6000, "Equities": 4000, DEBT: -1000}
    txns = [
        _txn(f"t{i}", 100, TransactionType.debit, days_ago=i + 1) for i in range(5)
    ] + [_txn("pay", 1000, TransactionType.credit)]
    result = compute_health_score(assets, txns, "USD", RATES, as_of=TODAY)

    # runway 6000 / 500 = 12 months, capped at 30
    assert result.details.liquidity == 30
    # savings rate 50% against a 40% target, capped at 40
    assert result.details.savings == 40
    assert result.details.savings_rate_pct == 50
    # debt 1000 / assets 10000 = 10%
    assert result.details.debt == 18
    assert result.details.debt_ratio_pct == 10
    # two positive asset classes out of four
    assert result.details.diversity == 5
    assert result.details.class_count == 2
    assert result.details.months_runway == 12.0
    assert result.score == 93
    assert result.is_new is False


def test_health_score_brand_new_user():
    result = compute_health_score({}, [], "USD", RATES, as_of=TODAY)
    assert result.is_new is True
    assert result.score == 0


def test_health_score_bounds_with_heavy_debt_and_overspending():
    assets = {CASH: 10, DEBT: -50000}
    txns = [_txn(f"t{i}", 5000, TransactionType.debit) for i in range(6)] + [
        _txn("pay", 100, TransactionType.credit)
    ]
    result = compute_health_score(assets, txns, "USD", RATES, as_of=TODAY)
    assert 0 <= result.score <= 100
    assert result.details.savings == 0
    assert result.details.debt == 0


def test_runway_divisor_floor_without_expenses():
    assets = {CASH: 3}
    txns = [_txn(f"t{i}", 10, TransactionType.credit) for i in range(5)]
    result = compute_health_score(assets, txns, "USD", RATES, as_of=TODAY)
    assert result.details.months_runway == 3.0
    assert result.details.savings_rate_pct == 100


def test_savings_rate_is_zero_without_income():
    assets = {CASH: 1000}
    txns = [_txn(f"t{i}", 100, TransactionType.debit) for i in range(5)]
    result = compute_health_score(assets, txns, "USD", RATES, as_of=TODAY)
    assert result.details.savings_rate_pct == 0
    assert result.details.savings == 0
    assert result.details.months_runway == 2.0


def test_debt_ratio_is_zero_without_positive_assets():
    assets = {DEBT: -5000}
    txns = [_txn(f"t{i}", 100, TransactionType.debit) for i in range(5)]
    result = compute_health_score(assets, txns, "USD", RATES, as_of=TODAY)
    assert result.details.debt_ratio_pct == 0
    assert result.details.debt == 20
    assert result.is_new is False
    assert result.score == 20
