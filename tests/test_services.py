from datetime import date

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker

import database
from database import Base
from models import AccountType, BudgetType, Transaction, TransactionType
from schemas import (
    AccountIn,
    BudgetIn,
    BusinessEntityIn,
    BusinessMetricIn,
    InvestmentIn,
    ReportParams,
    TransactionIn,
)
from services import (
    AccountService,
    BudgetService,
    BusinessMetricService,
    BusinessService,
    DashboardService,
    InvestmentService,
    ReportService,
    TransactionFilters,
    TransactionService,
)

RATES = {"USD": 1.0, "EUR": 0.5}


def _session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def _checking(session: Session, balance: float = 1000) -> str:
    account = AccountService(session).create(
        AccountIn(name="Checking", type=AccountType.checking, balance=balance)
    )
    return account.id


def _txn_in(account_id: str, amount: float, txn_type: TransactionType, **extra) -> TransactionIn:
    values = {
        "account_id": account_id,
        "name": "Test",
        "numeric_amount": amount,
        "date": date(2025, 8, 1),
        "category": "Food",
        "type": txn_type,
    }
    values.update(extra)
    return TransactionIn(**values)


def test_transactions_keep_account_balance_in_sync():
    with _session() as session:
        account_id = _checking(session)
        accounts = AccountService(session)
        txns = TransactionService(session)

        pay = txns.create(_txn_in(account_id, 500, TransactionType.credit))
        rent = txns.create(_txn_in(account_id, 200, TransactionType.debit))
        assert accounts.get(account_id).balance == 1300
        assert accounts.get(account_id).initial_balance == 1000

        txns.update(rent.id, _txn_in(account_id, 300, TransactionType.debit))
        assert accounts.get(account_id).balance == 1200

        txns.delete(pay.id)
        assert accounts.get(account_id).balance == 700

        audit = accounts.audit(account_id)
        assert audit.is_consistent
        assert audit.replayed_balance == 700


def test_moving_a_transaction_between_accounts():
    with _session() as session:
        first = _checking(session)
        second = _checking(session, balance=0)
        txns = TransactionService(session)
        txn = txns.create(_txn_in(first, 100, TransactionType.debit))
        txns.update(txn.id, _txn_in(second, 100, TransactionType.debit))

        accounts = AccountService(session)
        assert accounts.get(first).balance == 1000
        assert accounts.get(second).balance == -100


def test_foreign_currency_is_converted_to_account_currency():
    with _session() as session:
        account_id = _checking(session)
        txns = TransactionService(session)

        with pytest.raises(ValueError, match="Exchange rates"):
            txns.create(_txn_in(account_id, 100, TransactionType.debit, currency="EUR"))

        txn = txns.create(
            _txn_in(account_id, 100, TransactionType.debit, currency="EUR"), rates=RATES
        )
        assert txn.numeric_amount == 200
        assert txn.foreign_amount == 100
        assert txn.exchange_rate == 2
        assert txn.currency == "EUR"
        assert txn.account_currency == "USD"
        assert AccountService(session).get(account_id).balance == 800


def test_audit_reports_drift_and_reconcile_repairs_it():
    with _session() as session:
        account_id = _checking(session)
        TransactionService(session).create(_txn_in(account_id, 50, TransactionType.debit))

        accounts = AccountService(session)
        account = accounts.get(account_id)
        account.balance = 999
        session.commit()

        audit = accounts.audit(account_id)
        assert audit.drift == 49
        assert not audit.is_consistent

        assert accounts.reconcile(account_id).balance == 950
        assert accounts.audit(account_id).is_consistent


def test_account_currency_is_locked_once_it_has_history():
    with _session() as session:
        account_id = _checking(session)
        TransactionService(session).create(_txn_in(account_id, 10, TransactionType.debit))
        with pytest.raises(ValueError, match="currency"):
            AccountService(session).update(
                account_id,
                AccountIn(name="Checking", type=AccountType.checking, currency="EUR"),
            )


def test_missing_records_raise_value_error():
    with _session() as session:
        with pytest.raises(ValueError, match="Account not found"):
            AccountService(session).get("nope")
        with pytest.raises(ValueError, match="Transaction not found"):
            TransactionService(session).delete("nope")
        with pytest.raises(ValueError, match="Account not found"):
            TransactionService(session).create(_txn_in("nope", 1, TransactionType.debit))


def test_pay_recurring_posts_a_copy_and_advances_parent():
    with _session() as session:
        account_id = _checking(session)
        txns = TransactionService(session)
        bill = txns.create(
            _txn_in(
                account_id,
                100,
                TransactionType.debit,
                date=date(2024, 1, 31),
                is_recurring=True,
                recurring_frequency="monthly",
            )
        )
        assert bill.next_recurring_date == date(2024, 1, 31)

        payment, parent = txns.pay_recurring(bill.id, today=date(2024, 2, 2))
        assert payment.date == date(2024, 2, 2)
        assert payment.is_recurring is False
        assert payment.numeric_amount == 100
        assert parent.next_recurring_date == date(2024, 2, 29)
        assert parent.is_recurring is True
        assert AccountService(session).get(account_id).balance == 800

        with pytest.raises(ValueError, match="not recurring"):
            txns.pay_recurring(payment.id, today=date(2024, 2, 2))


def test_pay_recurring_stops_at_end_date():
    with _session() as session:
        account_id = _checking(session)
        txns = TransactionService(session)
        bill = txns.create(
            _txn_in(
                account_id,
                100,
                TransactionType.debit,
                date=date(2024, 1, 15),
                is_recurring=True,
                recurring_frequency="monthly",
                recurring_end_date=date(2024, 2, 1),
            )
        )
        _, parent = txns.pay_recurring(bill.id, today=date(2024, 1, 15))
        assert parent.next_recurring_date is None
        assert parent.is_recurring is False


def test_budgets_reject_duplicates_and_report_spend():
    with _session() as session:
        budgets = BudgetService(session)
        budgets.create(BudgetIn(category="Food", limit=500))
        with pytest.raises(ValueError, match="already exists"):
            budgets.create(BudgetIn(category="Food", limit=100))
        budgets.create(BudgetIn(category="Food", limit=100, type=BudgetType.income))

        account_id = _checking(session)
        TransactionService(session).create(_txn_in(account_id, 120, TransactionType.debit))

        spend = {
            (b.category, b.type): b.spent
            for b in budgets.with_spend("USD", RATES, as_of=date(2025, 8, 20))
        }
        assert spend[("Food", BudgetType.expense)] == 120
        assert spend[("Food", BudgetType.income)] == 0


def test_investment_value_follows_price():
    with _session() as session:
        investments = InvestmentService(session)
        fund = investments.create(
            InvestmentIn(name="Index", ticker="vti", type="etf", quantity=3, current_price=10)
        )
        assert fund.ticker == "VTI"
        assert fund.current_value == 30

        fund = investments.update_price(fund.id, 12.5, as_of=date(2025, 8, 1))
        assert fund.current_value == 37.5
        assert fund.last_updated == date(2025, 8, 1)
        with pytest.raises(ValueError):
            investments.update_price(fund.id, -1)


def test_business_health_from_stored_metrics():
    with _session() as session:
        shop = BusinessService(session).create(BusinessEntityIn(name="Shop", type="store"))
        metrics = BusinessMetricService(session)
        metrics.upsert(
            shop.id,
            BusinessMetricIn(metric_id="revenue", target_value=100, warning_threshold=50),
        )
        metrics.upsert(
            shop.id,
            BusinessMetricIn(metric_id="revenue", target_value=1000, warning_threshold=500),
        )
        metrics.upsert(shop.id, BusinessMetricIn(metric_id="nps", is_active=False))
        assert [m.metric_id for m in metrics.list_for(shop.id)] == ["nps", "revenue"]

        account_id = _checking(session)
        TransactionService(session).create(
            _txn_in(account_id, 750, TransactionType.credit, category="Sales", business_id=shop.id)
        )

        health = metrics.health(shop.id)
        assert health.overall_score == 75
        assert health.status == "at_risk"
        assert health.top_detractors == []

        metrics.delete(shop.id, "nps")
        with pytest.raises(ValueError, match="Metric not found"):
            metrics.delete(shop.id, "nps")


def test_deleting_a_business_keeps_its_transactions():
    with _session() as session:
        businesses = BusinessService(session)
        shop = businesses.create(BusinessEntityIn(name="Shop", type="store"))
        account_id = _checking(session)
        txn = TransactionService(session).create(
            _txn_in(account_id, 10, TransactionType.credit, business_id=shop.id)
        )

        [entity] = businesses.metrics("USD", RATES)
        assert entity.metrics.revenue == 10

        businesses.delete(shop.id)
        session.expire_all()
        assert session.get(Transaction, txn.id).business_id is None
        assert businesses.list_all() == []


def test_dashboard_and_report_services():
    with _session() as session:
        account_id = _checking(session)
        TransactionService(session).create(
            _txn_in(account_id, 300, TransactionType.debit, date=date(2025, 8, 5))
        )
        TransactionService(session).create(
            _txn_in(account_id, 2000, TransactionType.credit, date=date(2025, 8, 1), category="Salary")
        )
        BudgetService(session).create(BudgetIn(category="Food", limit=500))

        dashboard = DashboardService(session, base_currency="USD", rates=RATES)
        summary = dashboard.summary(as_of=date(2025, 8, 10))
        assert summary.net_worth == 2700
        assert summary.budgets[0].spent == 300
        assert summary.trend.current_month_spent == 300
        assert 0 <= summary.health.score <= 100

        analysis = dashboard.budget_analysis(time_range="ytd", today=date(2025, 8, 10))
        assert len(analysis.history) == 8

        report = ReportService(session).generate(
            ReportParams(), base_currency="USD", rates=RATES, today=date(2025, 8, 10)
        )
        assert report.tx_count == 2
        assert report.summary.net.value == 1700

        filtered = TransactionService(session).records(
            TransactionFilters(type=TransactionType.credit)
        )
        assert [t.category for t in filtered] == ["Salary"]
        assert "Checking" in TransactionService(session).export_csv()


def test_get_session_closes_the_request_session(monkeypatch):
    engine = create_engine("sqlite:///:memory:")
    monkeypatch.setattr(database, "SessionLocal", sessionmaker(bind=engine))

    dependency = database.get_session()
    session = next(dependency)
    assert isinstance(session, Session)
    session.execute(text("SELECT 1"))
    assert session.in_transaction()

    dependency.close()
    assert not session.in_transaction()
