from datetime import date

import pytest

from models import TransactionType
from reports import ReportEngine, percent_change
from schemas import (
    AccountRecord,
    BudgetRecord,
    BusinessEntityRecord,
    InvestmentRecord,
    ReportParams,
    TransactionRecord,
)

RATES = {"USD": 1.0, "EUR": 0.5}
TODAY = date(2025, 8, 15)


def _txn(
    txn_id: str,
    amount: float,
    txn_type: TransactionType,
    when: date,
    category: str = "Food",
    **extra,
) -> TransactionRecord:
    return TransactionRecord(
        id=txn_id,
        account_id="acc-1",
        name=txn_id,
        numeric_amount=amount,
        date=when,
        category=category,
        type=txn_type,
        **extra,
    )


def _engine() -> ReportEngine:
    txns = [
        _txn("salary", 3000, TransactionType.credit, date(2025, 8, 1), "Salary"),
        _txn("rent", 1000, TransactionType.debit, date(2025, 8, 3), "Rent"),
        _txn("groceries", 200, TransactionType.debit, date(2025, 8, 5)),
        _txn("misc", 100, TransactionType.debit, date(2025, 8, 6), ""),
        _txn(
            "sale", 500, TransactionType.credit, date(2025, 8, 7), "Sales", business_id="shop"
        ),
        _txn(
            "stock",
            200,
            TransactionType.debit,
            date(2025, 8, 8),
            "Inventory",
            business_id="shop",
        ),
        _txn("july", 400, TransactionType.debit, date(2025, 7, 20)),
        _txn("january", 999, TransactionType.credit, date(2025, 1, 10), "Salary"),
    ]
    return ReportEngine(
        transactions=txns,
        accounts=[AccountRecord(id="acc-1", type="checking", balance=2000)],
        investments=[InvestmentRecord(id="inv-1", type="etf", current_value=1000)],
        business_entities=[
            BusinessEntityRecord(id="cafe", name="Cafe", type="store"),
            BusinessEntityRecord(id="shop", name="Shop", type="store"),
        ],
        budgets=[BudgetRecord(id="b-food", category="Food", limit=500)],
        rates=RATES,
    )


def test_percent_change_is_none_without_a_baseline():
    assert percent_change(150, 100) == 50
    assert percent_change(50, -100) == 150
    assert percent_change(10, 0) is None


def test_month_report_summary_and_deltas():
    report = _engine().generate(ReportParams(), base_currency="USD", today=TODAY)

    assert report.period == "month"
    assert report.date_range.start == date(2025, 8, 1)
    assert report.previous_range.end == date(2025, 7, 31)
    assert report.generated_at == "2025-08-15"
    assert report.tx_count == 6
    assert report.excluded_tx_count == 2

    summary = report.summary
    assert summary.income.value == 3000
    assert summary.income.delta is None
    assert summary.income.formatted == "$3,000.00"
    assert summary.expense.value == 1300
    assert summary.expense.delta == 225
    assert summary.net.value == 1700
    assert summary.net_worth.value == 3000
    assert summary.liquid_assets.value == 2000
    assert summary.invested_assets.value == 1000
    assert summary.net_worth.delta is None

    [food] = report.budgets
    assert food.spent == 200
    assert 0 <= report.health.score <= 100


def test_top_categories_ranked_with_name_tie_break():
    report = _engine().generate(ReportParams(), base_currency="USD", today=TODAY)
    names = [c.name for c in report.top_expense_categories]
    assert names == ["Rent", "Food", "Uncategorized"]
    rent = report.top_expense_categories[0]
    assert rent.transaction_count == 1
    assert rent.percentage == pytest.approx(1000 / 1300 * 100)
    assert [c.name for c in report.top_income_categories] == ["Salary"]


def test_data_quality_flags_uncategorized_transactions():
    report = _engine().generate(ReportParams(), base_currency="USD", today=TODAY)
    assert report.uncategorized_percent == pytest.approx(100 / 6)
    assert report.data_quality.score == pytest.approx(100 - 100 / 6)
    assert report.data_quality.warnings == ["1 transactions missing category"]


def test_future_dated_transactions_are_warned_about():
    engine = ReportEngine(
        transactions=[_txn("later", 10, TransactionType.debit, date(2025, 8, 20))],
        accounts=[],
        investments=[],
        business_entities=[],
        rates=RATES,
    )
    params = ReportParams(period="custom", start=date(2025, 8, 1), end=date(2025, 8, 31))
    report = engine.generate(params, base_currency="USD", today=TODAY)
    assert report.data_quality.warnings == ["1 transactions dated in the future"]
    assert report.data_quality.score == 100


def test_business_section_and_entity_breakdown():
    report = _engine().generate(ReportParams(), base_currency="USD", today=TODAY)
    business = report.business
    assert business is not None
    assert business.revenue.value == 500
    assert business.cogs.value == 200
    assert business.gross_profit.value == 300
    assert business.expenses.value == 200
    assert business.net_profit.value == 300
    assert business.gross_margin == 60
    assert business.net_margin == 60
    assert [e.id for e in business.by_entity] == ["shop", "cafe"]
    shop = business.by_entity[0]
    assert shop.profit == 300
    assert shop.trend is None


def test_scope_filters_business_transactions():
    engine = _engine()
    personal = engine.generate(
        ReportParams(scope="personal"), base_currency="USD", today=TODAY
    )
    assert personal.summary.income.value == 3000
    assert personal.summary.expense.value == 1300
    assert personal.business is None

    business = engine.generate(
        ReportParams(scope="business"), base_currency="USD", today=TODAY
    )
    assert business.tx_count == 2
    assert business.summary.income.value == 0
    assert business.summary.expense.value == 0
    assert business.business is not None
    assert business.business.revenue.value == 500


def test_business_credits_stay_out_of_personal_income():
    engine = ReportEngine(
        transactions=[
            _txn("pay", 1000, TransactionType.credit, date(2025, 8, 2), "Salary"),
            _txn(
                "invoice",
                5000,
                TransactionType.credit,
                date(2025, 8, 4),
                "Sales",
                business_id="shop",
            ),
        ],
        accounts=[],
        investments=[],
        business_entities=[BusinessEntityRecord(id="shop", name="Shop", type="store")],
        rates=RATES,
    )
    report = engine.generate(ReportParams(scope="all"), base_currency="USD", today=TODAY)
    assert report.summary.income.value == 1000
    assert report.summary.savings_rate.value == 100
    assert report.business is not None
    assert report.business.revenue.value == 5000
    assert [c.name for c in report.top_income_categories] == ["Salary"]


def test_zero_amount_transactions_are_warned_about():
    engine = ReportEngine(
        transactions=[
            _txn("refund", 0, TransactionType.credit, date(2025, 8, 3)),
            _txn("coffee", 4, TransactionType.debit, date(2025, 8, 4)),
        ],
        accounts=[],
        investments=[],
        business_entities=[],
        rates=RATES,
    )
    report = engine.generate(ReportParams(), base_currency="USD", today=TODAY)
    assert report.data_quality.warnings == ["1 transactions with a zero amount"]


def test_report_currency_override():
    report = _engine().generate(
        ReportParams(base_currency="eur"), base_currency="USD", today=TODAY
    )
    assert report.currency == "EUR"
    assert report.summary.income.value == 1500
    assert report.summary.income.formatted == "€1,500.00"


def test_custom_period_without_dates_is_rejected():
    with pytest.raises(ValueError):
        _engine().generate(
            ReportParams(period="custom"), base_currency="USD", today=TODAY
        )


def test_generated_at_is_passed_through():
    report = _engine().generate(
        ReportParams(period="ytd"),
        base_currency="USD",
        today=TODAY,
        generated_at="2025-08-15T09:30:00",
    )
    assert report.generated_at == "2025-08-15T09:30:00"
    assert report.summary.income.value == 3999
