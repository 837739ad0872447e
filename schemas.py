from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import (
    AccountType,
    BudgetType,
    BusinessEntityType,
    InvestmentStrategy,
    InvestmentType,
    MetricFrequency,
    RecurringFrequency,
    TransactionStatus,
    TransactionType,
)

DEFAULT_ACCOUNT_COLOR = "from-gray-500 to-gray-700"
DEFAULT_BUDGET_COLOR = "bg-gray-500"
DEFAULT_ICON_KEY = "tag"


def _upper_code(value: object) -> object:
    if value is None:
        return "USD"
    if isinstance(value, str):
        return value.strip().upper() or "USD"
    return value


# --- Records handed to the aggregation layer -------------------------------
#
# Rows from the database (or any other source) are validated and defaulted
# here exactly once. The calculators assume these shapes and never look at
# raw rows.


class AccountRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str = ""
    type: AccountType
    balance: float
    initial_balance: float = 0.0
    currency: str = "USD"
    institution: str = "Unknown"
    color: str = DEFAULT_ACCOUNT_COLOR
    linked_business_id: Optional[str] = None

    normalize_currency = field_validator("currency", mode="before")(_upper_code)

    @field_validator("initial_balance", mode="before")
    @classmethod
    def default_initial_balance(cls, value: object) -> object:
        return value or 0.0

    @field_validator("institution", mode="before")
    @classmethod
    def default_institution(cls, value: object) -> object:
        return value or "Unknown"

    @field_validator("color", mode="before")
    @classmethod
    def default_color(cls, value: object) -> object:
        return value or DEFAULT_ACCOUNT_COLOR


class TransactionRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    account_id: str
    name: str = ""
    numeric_amount: float = Field(..., ge=0)
    currency: str = "USD"
    account_currency: Optional[str] = None
    date: date
    category: str = ""
    description: Optional[str] = None
    type: TransactionType
    status: TransactionStatus = TransactionStatus.completed
    business_id: Optional[str] = None
    is_recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    next_recurring_date: Optional[date] = None
    recurring_end_date: Optional[date] = None

    normalize_currency = field_validator("currency", mode="before")(_upper_code)

    @field_validator("account_currency", mode="before")
    @classmethod
    def normalize_account_currency(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper() or None
        return value

    @field_validator("category", "name", mode="before")
    @classmethod
    def default_text(cls, value: object) -> object:
        return value or ""

    @field_validator("is_recurring", mode="before")
    @classmethod
    def default_flag(cls, value: object) -> object:
        return bool(value)


class BudgetRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    category: str
    limit: float = Field(..., ge=0)
    type: BudgetType = BudgetType.expense
    spent: float = 0.0
    color: str = DEFAULT_BUDGET_COLOR
    icon_key: str = DEFAULT_ICON_KEY

    @field_validator("spent", mode="before")
    @classmethod
    def default_spent(cls, value: object) -> object:
        return value or 0.0

    @field_validator("color", mode="before")
    @classmethod
    def default_color(cls, value: object) -> object:
        return value or DEFAULT_BUDGET_COLOR

    @field_validator("icon_key", mode="before")
    @classmethod
    def default_icon(cls, value: object) -> object:
        return value or DEFAULT_ICON_KEY

    @field_validator("type", mode="before")
    @classmethod
    def default_type(cls, value: object) -> object:
        return value or BudgetType.expense


class InvestmentRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str = ""
    ticker: Optional[str] = None
    type: InvestmentType
    quantity: float = 0.0
    cost_basis: float = 0.0
    current_price: float = 0.0
    current_value: float = 0.0
    currency: str = "USD"

    normalize_currency = field_validator("currency", mode="before")(_upper_code)

    @property
    def unrealized_pnl(self) -> float:
        return self.current_value - self.cost_basis

    @property
    def roi_percent(self) -> float:
        if self.cost_basis == 0:
            return 0.0
        return self.unrealized_pnl / self.cost_basis * 100


class EntityMetrics(BaseModel):
    revenue: float = 0.0
    expenses: float = 0.0
    profit: float = 0.0
    margin: float = 0.0
    trend: float = 0.0


class BusinessEntityRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: BusinessEntityType
    parent_id: Optional[str] = None
    metrics: Optional[EntityMetrics] = None


class BusinessMetricConfig(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str = ""
    business_id: str = ""
    metric_id: str
    is_active: bool = True
    weight: float = 1.0
    target_value: Optional[float] = None
    warning_threshold: Optional[float] = None
    critical_threshold: Optional[float] = None
    is_higher_better: bool = True
    frequency: MetricFrequency = MetricFrequency.monthly

    @field_validator("weight", mode="before")
    @classmethod
    def default_weight(cls, value: object) -> object:
        return 1.0 if value is None else value


# --- API payloads ----------------------------------------------------------


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    type: AccountType
    balance: float = 0.0
    initial_balance: Optional[float] = None
    currency: str = Field("USD", min_length=3, max_length=8)
    institution: Optional[str] = Field(None, max_length=120)
    last4: Optional[str] = Field(None, max_length=4)
    color: Optional[str] = Field(None, max_length=60)
    linked_business_id: Optional[str] = None

    normalize_currency = field_validator("currency", mode="before")(_upper_code)


class TransactionIn(BaseModel):
    account_id: str
    name: str = Field(..., min_length=1, max_length=200)
    numeric_amount: float = Field(..., ge=0)
    currency: str = Field("USD", min_length=3, max_length=8)
    account_currency: Optional[str] = Field(None, max_length=8)
    date: date
    category: str = Field("", max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    type: TransactionType
    status: TransactionStatus = TransactionStatus.completed
    business_id: Optional[str] = None
    is_recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    next_recurring_date: Optional[date] = None
    recurring_end_date: Optional[date] = None

    normalize_currency = field_validator("currency", mode="before")(_upper_code)

    @model_validator(mode="after")
    def check_recurring_frequency(self) -> "TransactionIn":
        if self.is_recurring and self.recurring_frequency is None:
            raise ValueError("Recurring transactions require a frequency")
        return self


class BudgetIn(BaseModel):
    category: str = Field(..., min_length=1, max_length=100)
    limit: float = Field(..., ge=0)
    type: BudgetType = BudgetType.expense
    color: Optional[str] = Field(None, max_length=60)
    icon_key: Optional[str] = Field(None, max_length=60)


class InvestmentIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    ticker: Optional[str] = Field(None, max_length=20)
    type: InvestmentType
    strategy: InvestmentStrategy = InvestmentStrategy.passive
    quantity: float = Field(0.0, ge=0)
    cost_basis: float = Field(0.0, ge=0)
    current_price: float = Field(0.0, ge=0)
    currency: str = Field("USD", min_length=3, max_length=8)
    notes: Optional[str] = None

    normalize_currency = field_validator("currency", mode="before")(_upper_code)


class BusinessEntityIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    type: BusinessEntityType
    parent_id: Optional[str] = None


class BusinessMetricIn(BaseModel):
    metric_id: str = Field(..., min_length=1, max_length=60)
    is_active: bool = True
    weight: float = Field(1.0, ge=0, le=10)
    target_value: Optional[float] = None
    warning_threshold: Optional[float] = None
    critical_threshold: Optional[float] = None
    is_higher_better: bool = True
    frequency: MetricFrequency = MetricFrequency.monthly


class ReportParams(BaseModel):
    scope: Literal["all", "personal", "business"] = "all"
    period: Literal["month", "quarter", "year", "ytd", "custom"] = "month"
    base_currency: Optional[str] = None
    start: Optional[date] = None
    end: Optional[date] = None

    @field_validator("base_currency", mode="before")
    @classmethod
    def normalize_base_currency(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper() or None
        return value
