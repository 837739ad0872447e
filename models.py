import datetime as dt
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


def _new_id() -> str:
    return str(uuid4())


MONEY = Numeric(18, 2, asdecimal=False)
QUANTITY = Numeric(24, 8, asdecimal=False)
PRICE = Numeric(18, 4, asdecimal=False)


class AccountType(str, Enum):
    checking = "checking"
    savings = "savings"
    credit = "credit"
    investment = "investment"
    crypto = "crypto"
    business = "business"


class TransactionType(str, Enum):
    credit = "credit"
    debit = "debit"


class TransactionStatus(str, Enum):
    pending = "pending"
    completed = "completed"


class RecurringFrequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


class BudgetType(str, Enum):
    income = "income"
    expense = "expense"


class InvestmentType(str, Enum):
    stock = "stock"
    etf = "etf"
    crypto = "crypto"
    real_estate = "real_estate"
    bond = "bond"
    startup = "startup"
    commodity = "commodity"


class InvestmentStrategy(str, Enum):
    passive = "passive"
    active = "active"


class BusinessEntityType(str, Enum):
    store = "store"
    channel = "channel"
    subsidiary = "subsidiary"
    real_estate = "real_estate"
    service = "service"


class MetricFrequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"


class TimestampMixin:
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=dt.datetime.utcnow, nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow, nullable=False
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    type: Mapped[AccountType] = mapped_column(SAEnum(AccountType), nullable=False)
    balance: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    initial_balance: Mapped[Optional[float]] = mapped_column(MONEY, default=0)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="USD")
    institution: Mapped[Optional[str]] = mapped_column(String(120))
    last4: Mapped[Optional[str]] = mapped_column(String(4))
    color: Mapped[Optional[str]] = mapped_column(String(60))
    is_frozen: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    linked_business_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("business_entities.id")
    )

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="account", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("ix_accounts_user", "user_id"),)


class BusinessEntity(Base, TimestampMixin):
    __tablename__ = "business_entities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    type: Mapped[BusinessEntityType] = mapped_column(
        SAEnum(BusinessEntityType), nullable=False
    )
    parent_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("business_entities.id")
    )

    metric_configs: Mapped[list["BusinessMetric"]] = relationship(
        "BusinessMetric", back_populates="business", cascade="all, delete-orphan"
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    account_id: Mapped[str] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    numeric_amount: Mapped[float] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="USD")
    account_currency: Mapped[Optional[str]] = mapped_column(String(8))
    foreign_amount: Mapped[Optional[float]] = mapped_column(MONEY)
    exchange_rate: Mapped[Optional[float]] = mapped_column(PRICE)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    description: Mapped[Optional[str]] = mapped_column(Text)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(TransactionStatus), nullable=False, default=TransactionStatus.completed
    )
    business_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("business_entities.id")
    )
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurring_frequency: Mapped[Optional[RecurringFrequency]] = mapped_column(
        SAEnum(RecurringFrequency)
    )
    next_recurring_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    recurring_end_date: Mapped[Optional[dt.date]] = mapped_column(Date)

    account: Mapped["Account"] = relationship("Account", back_populates="transactions")

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_category_date", "user_id", "category", "date"),
        Index("ix_transactions_business_date", "business_id", "date"),
        CheckConstraint(
            "numeric_amount >= 0", name="ck_transactions_amount_positive"
        ),
    )


class BudgetCategory(Base, TimestampMixin):
    __tablename__ = "budget_categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    limit: Mapped[float] = mapped_column(MONEY, nullable=False)
    type: Mapped[BudgetType] = mapped_column(
        SAEnum(BudgetType), nullable=False, default=BudgetType.expense
    )
    color: Mapped[Optional[str]] = mapped_column(String(60))
    icon_key: Mapped[Optional[str]] = mapped_column(String(60))

    __table_args__ = (
        UniqueConstraint("user_id", "type", "category", name="uq_budget_user_category"),
        CheckConstraint('"limit" >= 0', name="ck_budget_limit_positive"),
    )


class Investment(Base, TimestampMixin):
    __tablename__ = "investments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    ticker: Mapped[Optional[str]] = mapped_column(String(20))
    type: Mapped[InvestmentType] = mapped_column(SAEnum(InvestmentType), nullable=False)
    strategy: Mapped[InvestmentStrategy] = mapped_column(
        SAEnum(InvestmentStrategy), nullable=False, default=InvestmentStrategy.passive
    )
    quantity: Mapped[float] = mapped_column(QUANTITY, nullable=False, default=0)
    cost_basis: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    current_price: Mapped[float] = mapped_column(PRICE, nullable=False, default=0)
    current_value: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="USD")
    last_updated: Mapped[Optional[dt.date]] = mapped_column(Date)
    notes: Mapped[Optional[str]] = mapped_column(Text)


class BusinessMetric(Base, TimestampMixin):
    __tablename__ = "business_metrics"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    business_id: Mapped[str] = mapped_column(
        ForeignKey("business_entities.id", ondelete="CASCADE"), nullable=False
    )
    metric_id: Mapped[str] = mapped_column(String(60), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    weight: Mapped[float] = mapped_column(Numeric(6, 2, asdecimal=False), default=1)
    target_value: Mapped[Optional[float]] = mapped_column(PRICE)
    warning_threshold: Mapped[Optional[float]] = mapped_column(PRICE)
    critical_threshold: Mapped[Optional[float]] = mapped_column(PRICE)
    is_higher_better: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    frequency: Mapped[MetricFrequency] = mapped_column(
        SAEnum(MetricFrequency), nullable=False, default=MetricFrequency.monthly
    )

    business: Mapped["BusinessEntity"] = relationship(
        "BusinessEntity", back_populates="metric_configs"
    )

    __table_args__ = (
        UniqueConstraint("business_id", "metric_id", name="uq_business_metric"),
    )
