from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aggregations import (
    compute_budget_spent_monthly,
    compute_business_metrics,
    compute_net_worth,
)
from budget_analysis import BudgetAnalysis, analyze_budget
from csv_utils import export_transactions
from dashboard import (
    BudgetPacing,
    SpendingTrend,
    budget_pacing,
    spending_trend,
    upcoming_bills,
)
from health import HealthScore, assets_by_type, compute_health_score
from kpi_engine import BusinessHealth, compute_business_health, readings_for
from models import (
    Account,
    BudgetCategory,
    BusinessEntity,
    BusinessMetric,
    Investment,
    Transaction,
    TransactionType,
)
from money import balance_drift, convert_amount, reconcile_account_balance, round2
from recurrence import local_today, next_occurrence
from reports import ReportEngine, ReportSnapshot
from schemas import (
    AccountIn,
    AccountRecord,
    BudgetIn,
    BudgetRecord,
    BusinessEntityIn,
    BusinessEntityRecord,
    BusinessMetricConfig,
    BusinessMetricIn,
    InvestmentIn,
    InvestmentRecord,
    ReportParams,
    TransactionIn,
    TransactionRecord,
)

logger = logging.getLogger(__name__)


def get_current_user_id() -> int:
    return 1


@dataclass
class TransactionFilters:
    account_id: Optional[str] = None
    business_id: Optional[str] = None
    type: Optional[TransactionType] = None
    category: Optional[str] = None
    start: Optional[date] = None
    end: Optional[date] = None


@dataclass(frozen=True)
class AccountAudit:
    account_id: str
    stored_balance: float
    replayed_balance: float
    drift: float

    @property
    def is_consistent(self) -> bool:
        return self.drift == 0


@dataclass(frozen=True)
class DashboardSummary:
    base_currency: str
    net_worth: float
    assets: dict[str, float]
    health: HealthScore
    pacing: BudgetPacing
    trend: SpendingTrend
    upcoming_bills: list[TransactionRecord]
    budgets: list[BudgetRecord]
    businesses: list[BusinessEntityRecord]


class AccountService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.name, Account.id)
        )
        return self.session.scalars(stmt).all()

    def records(self) -> list[AccountRecord]:
        return [AccountRecord.model_validate(a) for a in self.list_all()]

    def get(self, account_id: str) -> Account:
        account = self.session.get(Account, account_id)
        if not account or account.user_id != self.user_id:
            raise ValueError("Account not found")
        return account

    def create(self, data: AccountIn) -> Account:
        initial = data.balance if data.initial_balance is None else data.initial_balance
        account = Account(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            balance=data.balance,
            initial_balance=initial,
            currency=data.currency,
            institution=data.institution,
            last4=data.last4,
            color=data.color,
            linked_business_id=data.linked_business_id,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def update(self, account_id: str, data: AccountIn) -> Account:
        account = self.get(account_id)
        has_history = TransactionService(self.session, self.user_id).list(
            TransactionFilters(account_id=account.id)
        )
        if data.currency != account.currency and has_history:
            raise ValueError("Cannot change currency of an account with transactions")
        account.name = data.name.strip()
        account.type = data.type
        account.currency = data.currency
        account.institution = data.institution
        account.last4 = data.last4
        account.color = data.color
        account.linked_business_id = data.linked_business_id
        if data.initial_balance is not None:
            account.initial_balance = data.initial_balance
        self.session.commit()
        self.session.refresh(account)
        return account

    def delete(self, account_id: str) -> None:
        account = self.get(account_id)
        self.session.delete(account)
        self.session.commit()

    def audit(self, account_id: str) -> AccountAudit:
        """Compare the stored balance with a replay of the account's history."""
        account = self.get(account_id)
        record = AccountRecord.model_validate(account)
        txns = TransactionService(self.session, self.user_id).records(
            TransactionFilters(account_id=account.id)
        )
        audit = AccountAudit(
            account_id=account.id,
            stored_balance=round2(record.balance),
            replayed_balance=reconcile_account_balance(record, txns),
            drift=balance_drift(record, txns),
        )
        if not audit.is_consistent:
            logger.warning(
                f"account_audit: account={account.id} drift={audit.drift:.2f}"
            )
        return audit

    def reconcile(self, account_id: str) -> Account:
        """Overwrite the stored balance with the replayed one."""
        audit = self.audit(account_id)
        account = self.get(account_id)
        account.balance = audit.replayed_balance
        self.session.commit()
        self.session.refresh(account)
        return account


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _account(self, account_id: str) -> Account:
        return AccountService(self.session, self.user_id).get(account_id)

    def _check_business(self, business_id: Optional[str]) -> None:
        if business_id:
            BusinessService(self.session, self.user_id).get(business_id)

    @staticmethod
    def _signed(txn: Transaction) -> float:
        if txn.type == TransactionType.credit:
            return txn.numeric_amount
        return -txn.numeric_amount

    def list(self, filters: Optional[TransactionFilters] = None) -> list[Transaction]:
        stmt = select(Transaction).where(Transaction.user_id == self.user_id)
        if filters:
            if filters.account_id:
                stmt = stmt.where(Transaction.account_id == filters.account_id)
            if filters.business_id:
                stmt = stmt.where(Transaction.business_id == filters.business_id)
            if filters.type:
                stmt = stmt.where(Transaction.type == filters.type)
            if filters.category:
                stmt = stmt.where(Transaction.category == filters.category)
            if filters.start:
                stmt = stmt.where(Transaction.date >= filters.start)
            if filters.end:
                stmt = stmt.where(Transaction.date <= filters.end)
        stmt = stmt.order_by(Transaction.date.desc(), Transaction.id)
        return self.session.scalars(stmt).all()

    def records(self, filters: Optional[TransactionFilters] = None) -> list[TransactionRecord]:
        return [TransactionRecord.model_validate(t) for t in self.list(filters)]

    def get(self, transaction_id: str) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise ValueError("Transaction not found")
        return txn

    def _fill(
        self,
        txn: Transaction,
        data: TransactionIn,
        account: Account,
        rates: Optional[Mapping[str, float]],
    ) -> None:
        amount = data.numeric_amount
        txn.currency = data.currency
        txn.foreign_amount = None
        txn.exchange_rate = None
        txn.account_currency = account.currency
        if data.currency != account.currency:
            if rates is None:
                raise ValueError("Exchange rates are required for foreign currency")
            converted = round2(
                convert_amount(amount, data.currency, account.currency, rates)
            )
            txn.foreign_amount = amount
            txn.exchange_rate = converted / amount if amount else None
            amount = converted

        txn.account = account
        txn.name = data.name.strip()
        txn.numeric_amount = amount
        txn.date = data.date
        txn.category = data.category.strip()
        txn.description = data.description
        txn.type = data.type
        txn.status = data.status
        txn.business_id = data.business_id or account.linked_business_id
        txn.is_recurring = data.is_recurring
        txn.recurring_frequency = data.recurring_frequency if data.is_recurring else None
        txn.next_recurring_date = (
            (data.next_recurring_date or data.date) if data.is_recurring else None
        )
        txn.recurring_end_date = data.recurring_end_date if data.is_recurring else None

    def create(
        self, data: TransactionIn, *, rates: Optional[Mapping[str, float]] = None
    ) -> Transaction:
        """Record a transaction and apply it to its account balance.

        Amounts in a currency other than the account's are converted and the
        original amount is kept in ``foreign_amount``.
        """
        account = self._account(data.account_id)
        self._check_business(data.business_id)
        txn = Transaction(user_id=self.user_id)
        self._fill(txn, data, account, rates)
        account.balance = round2(account.balance + self._signed(txn))
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def update(
        self,
        transaction_id: str,
        data: TransactionIn,
        *,
        rates: Optional[Mapping[str, float]] = None,
    ) -> Transaction:
        txn = self.get(transaction_id)
        old_account = self._account(txn.account_id)
        old_account.balance = round2(old_account.balance - self._signed(txn))

        account = self._account(data.account_id)
        self._check_business(data.business_id)
        self._fill(txn, data, account, rates)
        account.balance = round2(account.balance + self._signed(txn))
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: str) -> None:
        txn = self.get(transaction_id)
        account = self._account(txn.account_id)
        account.balance = round2(account.balance - self._signed(txn))
        self.session.delete(txn)
        self.session.commit()

    def pay_recurring(
        self, transaction_id: str, *, today: Optional[date] = None
    ) -> tuple[Transaction, Transaction]:
        """Post one occurrence of a recurring transaction now.

        The payment is a plain copy dated ``today``. The recurring parent
        moves to its next due date, or stops recurring once that date would
        pass ``recurring_end_date``.
        """
        today = today or local_today()
        parent = self.get(transaction_id)
        record = TransactionRecord.model_validate(parent)
        if not record.is_recurring or record.recurring_frequency is None:
            raise ValueError("Transaction is not recurring")

        account = self._account(parent.account_id)
        payment = Transaction(
            user_id=self.user_id,
            account=account,
            name=parent.name,
            numeric_amount=parent.numeric_amount,
            currency=parent.currency,
            account_currency=parent.account_currency,
            foreign_amount=parent.foreign_amount,
            exchange_rate=parent.exchange_rate,
            date=today,
            category=parent.category,
            description=parent.description,
            type=parent.type,
            status=parent.status,
            business_id=parent.business_id,
            is_recurring=False,
        )
        account.balance = round2(account.balance + self._signed(payment))

        upcoming = next_occurrence(record)
        parent.next_recurring_date = upcoming
        if upcoming is None:
            parent.is_recurring = False

        self.session.add(payment)
        self.session.commit()
        self.session.refresh(payment)
        self.session.refresh(parent)
        logger.info(
            f"recurring_paid: transaction={parent.id} payment={payment.id} "
            f"next={upcoming.isoformat() if upcoming else 'none'}"
        )
        return payment, parent

    def export_csv(self, filters: Optional[TransactionFilters] = None) -> str:
        names = {a.id: a.name for a in AccountService(self.session, self.user_id).list_all()}
        return export_transactions(self.records(filters), names)


class BudgetService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[BudgetCategory]:
        stmt = (
            select(BudgetCategory)
            .where(BudgetCategory.user_id == self.user_id)
            .order_by(BudgetCategory.type, BudgetCategory.category)
        )
        return self.session.scalars(stmt).all()

    def records(self) -> list[BudgetRecord]:
        return [BudgetRecord.model_validate(b) for b in self.list_all()]

    def get(self, budget_id: str) -> BudgetCategory:
        budget = self.session.get(BudgetCategory, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise ValueError("Budget not found")
        return budget

    def _commit(self) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ValueError("Budget for this category already exists") from exc

    def create(self, data: BudgetIn) -> BudgetCategory:
        budget = BudgetCategory(
            user_id=self.user_id,
            category=data.category.strip(),
            limit=data.limit,
            type=data.type,
            color=data.color,
            icon_key=data.icon_key,
        )
        self.session.add(budget)
        self._commit()
        self.session.refresh(budget)
        return budget

    def update(self, budget_id: str, data: BudgetIn) -> BudgetCategory:
        budget = self.get(budget_id)
        budget.category = data.category.strip()
        budget.limit = data.limit
        budget.type = data.type
        budget.color = data.color
        budget.icon_key = data.icon_key
        self._commit()
        self.session.refresh(budget)
        return budget

    def delete(self, budget_id: str) -> None:
        budget = self.get(budget_id)
        self.session.delete(budget)
        self.session.commit()

    def with_spend(
        self,
        base_currency: str,
        rates: Mapping[str, float],
        *,
        as_of: Optional[date] = None,
    ) -> list[BudgetRecord]:
        txns = TransactionService(self.session, self.user_id).records()
        return compute_budget_spent_monthly(
            self.records(), txns, base_currency, rates, as_of=as_of or local_today()
        )


class InvestmentService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[Investment]:
        stmt = (
            select(Investment)
            .where(Investment.user_id == self.user_id)
            .order_by(Investment.name, Investment.id)
        )
        return self.session.scalars(stmt).all()

    def records(self) -> list[InvestmentRecord]:
        return [InvestmentRecord.model_validate(i) for i in self.list_all()]

    def get(self, investment_id: str) -> Investment:
        investment = self.session.get(Investment, investment_id)
        if not investment or investment.user_id != self.user_id:
            raise ValueError("Investment not found")
        return investment

    def _apply(self, investment: Investment, data: InvestmentIn) -> None:
        investment.name = data.name.strip()
        investment.ticker = data.ticker.upper() if data.ticker else None
        investment.type = data.type
        investment.strategy = data.strategy
        investment.quantity = data.quantity
        investment.cost_basis = data.cost_basis
        investment.current_price = data.current_price
        investment.current_value = round2(data.quantity * data.current_price)
        investment.currency = data.currency
        investment.notes = data.notes
        investment.last_updated = local_today()

    def create(self, data: InvestmentIn) -> Investment:
        investment = Investment(user_id=self.user_id)
        self._apply(investment, data)
        self.session.add(investment)
        self.session.commit()
        self.session.refresh(investment)
        return investment

    def update(self, investment_id: str, data: InvestmentIn) -> Investment:
        investment = self.get(investment_id)
        self._apply(investment, data)
        self.session.commit()
        self.session.refresh(investment)
        return investment

    def update_price(
        self, investment_id: str, price: float, *, as_of: Optional[date] = None
    ) -> Investment:
        if price < 0:
            raise ValueError("Price cannot be negative")
        investment = self.get(investment_id)
        investment.current_price = price
        investment.current_value = round2(investment.quantity * price)
        investment.last_updated = as_of or local_today()
        self.session.commit()
        self.session.refresh(investment)
        return investment

    def delete(self, investment_id: str) -> None:
        investment = self.get(investment_id)
        self.session.delete(investment)
        self.session.commit()


class BusinessService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[BusinessEntity]:
        stmt = (
            select(BusinessEntity)
            .where(BusinessEntity.user_id == self.user_id)
            .order_by(BusinessEntity.name, BusinessEntity.id)
        )
        return self.session.scalars(stmt).all()

    def records(self) -> list[BusinessEntityRecord]:
        return [BusinessEntityRecord.model_validate(e) for e in self.list_all()]

    def get(self, business_id: str) -> BusinessEntity:
        entity = self.session.get(BusinessEntity, business_id)
        if not entity or entity.user_id != self.user_id:
            raise ValueError("Business not found")
        return entity

    def create(self, data: BusinessEntityIn) -> BusinessEntity:
        if data.parent_id:
            self.get(data.parent_id)
        entity = BusinessEntity(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            parent_id=data.parent_id,
        )
        self.session.add(entity)
        self.session.commit()
        self.session.refresh(entity)
        return entity

    def update(self, business_id: str, data: BusinessEntityIn) -> BusinessEntity:
        entity = self.get(business_id)
        if data.parent_id:
            if data.parent_id == business_id:
                raise ValueError("A business cannot be its own parent")
            self.get(data.parent_id)
        entity.name = data.name.strip()
        entity.type = data.type
        entity.parent_id = data.parent_id
        self.session.commit()
        self.session.refresh(entity)
        return entity

    def delete(self, business_id: str) -> None:
        entity = self.get(business_id)
        # Detach history instead of deleting it; the money still moved.
        self.session.execute(
            update(Transaction)
            .where(Transaction.business_id == business_id)
            .values(business_id=None)
        )
        self.session.execute(
            update(Account)
            .where(Account.linked_business_id == business_id)
            .values(linked_business_id=None)
        )
        self.session.execute(
            update(BusinessEntity)
            .where(BusinessEntity.parent_id == business_id)
            .values(parent_id=None)
        )
        self.session.delete(entity)
        self.session.commit()

    def metrics(
        self,
        base_currency: str,
        rates: Mapping[str, float],
        *,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[BusinessEntityRecord]:
        txns = TransactionService(self.session, self.user_id).records()
        return compute_business_metrics(
            self.records(), txns, base_currency, rates, start=start, end=end
        )


class BusinessMetricService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.businesses = BusinessService(session, self.user_id)

    def list_for(self, business_id: str) -> list[BusinessMetric]:
        self.businesses.get(business_id)
        stmt = (
            select(BusinessMetric)
            .where(BusinessMetric.business_id == business_id)
            .order_by(BusinessMetric.metric_id)
        )
        return self.session.scalars(stmt).all()

    def upsert(self, business_id: str, data: BusinessMetricIn) -> BusinessMetric:
        self.businesses.get(business_id)
        metric = self.session.scalar(
            select(BusinessMetric).where(
                BusinessMetric.business_id == business_id,
                BusinessMetric.metric_id == data.metric_id,
            )
        )
        if not metric:
            metric = BusinessMetric(business_id=business_id, metric_id=data.metric_id)
            self.session.add(metric)
        metric.is_active = data.is_active
        metric.weight = data.weight
        metric.target_value = data.target_value
        metric.warning_threshold = data.warning_threshold
        metric.critical_threshold = data.critical_threshold
        metric.is_higher_better = data.is_higher_better
        metric.frequency = data.frequency
        self.session.commit()
        self.session.refresh(metric)
        return metric

    def delete(self, business_id: str, metric_id: str) -> None:
        for metric in self.list_for(business_id):
            if metric.metric_id == metric_id:
                self.session.delete(metric)
                self.session.commit()
                return
        raise ValueError("Metric not found")

    def health(
        self,
        business_id: str,
        *,
        manual_values: Optional[Mapping[str, float]] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> BusinessHealth:
        configs = [BusinessMetricConfig.model_validate(m) for m in self.list_for(business_id)]
        filters = TransactionFilters(business_id=business_id, start=start, end=end)
        txns = TransactionService(self.session, self.user_id).records(filters)
        readings = readings_for(configs, txns, manual_values)
        health = compute_business_health(readings, business_id=business_id)
        logger.info(
            f"business_health: business={business_id} score={health.overall_score} "
            f"status={health.status}"
        )
        return health


class DashboardService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        *,
        base_currency: str,
        rates: Mapping[str, float],
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.base_currency = base_currency
        self.rates = rates

    def summary(self, *, as_of: Optional[date] = None) -> DashboardSummary:
        as_of = as_of or local_today()
        accounts = AccountService(self.session, self.user_id).records()
        investments = InvestmentService(self.session, self.user_id).records()
        budgets = BudgetService(self.session, self.user_id).records()
        txns = TransactionService(self.session, self.user_id).records()
        entities = BusinessService(self.session, self.user_id).records()

        base, rates = self.base_currency, self.rates
        net_worth = compute_net_worth(accounts, investments, base, rates)
        assets = assets_by_type(accounts, investments, base, rates)
        return DashboardSummary(
            base_currency=base,
            net_worth=net_worth,
            assets=assets,
            health=compute_health_score(assets, txns, base, rates, as_of=as_of),
            pacing=budget_pacing(
                budgets, txns, assets, net_worth, base, rates, as_of=as_of
            ),
            trend=spending_trend(txns, base, rates, as_of=as_of),
            upcoming_bills=upcoming_bills(txns, as_of=as_of),
            budgets=compute_budget_spent_monthly(
                budgets, txns, base, rates, as_of=as_of
            ),
            businesses=compute_business_metrics(entities, txns, base, rates),
        )

    def health_score(self, *, as_of: Optional[date] = None) -> HealthScore:
        accounts = AccountService(self.session, self.user_id).records()
        investments = InvestmentService(self.session, self.user_id).records()
        txns = TransactionService(self.session, self.user_id).records()
        assets = assets_by_type(accounts, investments, self.base_currency, self.rates)
        return compute_health_score(
            assets, txns, self.base_currency, self.rates, as_of=as_of or local_today()
        )

    def budget_analysis(
        self, *, time_range: str = "6m", today: Optional[date] = None
    ) -> BudgetAnalysis:
        txns = TransactionService(self.session, self.user_id).records()
        return analyze_budget(
            txns,
            self.base_currency,
            self.rates,
            time_range=time_range,
            today=today or local_today(),
        )


class ReportService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def generate(
        self,
        params: ReportParams,
        *,
        base_currency: str,
        rates: Mapping[str, float],
        today: Optional[date] = None,
        generated_at: Optional[str] = None,
    ) -> ReportSnapshot:
        engine = ReportEngine(
            transactions=TransactionService(self.session, self.user_id).records(),
            accounts=AccountService(self.session, self.user_id).records(),
            investments=InvestmentService(self.session, self.user_id).records(),
            business_entities=BusinessService(self.session, self.user_id).records(),
            budgets=BudgetService(self.session, self.user_id).records(),
            rates=rates,
        )
        snapshot = engine.generate(
            params,
            base_currency=base_currency,
            today=today or local_today(),
            generated_at=generated_at,
        )
        logger.info(
            f"report_generated: period={snapshot.period} scope={snapshot.scope} "
            f"start={snapshot.date_range.start} end={snapshot.date_range.end} "
            f"transactions={snapshot.tx_count}"
        )
        return snapshot
