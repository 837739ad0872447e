"""initial finance schema

Revision ID: 202610160900
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610160900"
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(18, 2)
PRICE = sa.Numeric(18, 4)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "business_entities",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column(
            "type",
            sa.Enum(
                "store",
                "channel",
                "subsidiary",
                "real_estate",
                "service",
                name="businessentitytype",
            ),
            nullable=False,
        ),
        sa.Column("parent_id", sa.String(length=36), sa.ForeignKey("business_entities.id")),
        *_timestamps(),
    )

    op.create_table(
        "accounts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column(
            "type",
            sa.Enum(
                "checking",
                "savings",
                "credit",
                "investment",
                "crypto",
                "business",
                name="accounttype",
            ),
            nullable=False,
        ),
        sa.Column("balance", MONEY, nullable=False, server_default="0"),
        sa.Column("initial_balance", MONEY, server_default="0"),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="USD"),
        sa.Column("institution", sa.String(length=120)),
        sa.Column("last4", sa.String(length=4)),
        sa.Column("color", sa.String(length=60)),
        sa.Column("is_frozen", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "linked_business_id",
            sa.String(length=36),
            sa.ForeignKey("business_entities.id"),
        ),
        *_timestamps(),
    )
    op.create_index("ix_accounts_user", "accounts", ["user_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column(
            "account_id",
            sa.String(length=36),
            sa.ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("numeric_amount", MONEY, nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="USD"),
        sa.Column("account_currency", sa.String(length=8)),
        sa.Column("foreign_amount", MONEY),
        sa.Column("exchange_rate", PRICE),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("description", sa.Text()),
        sa.Column(
            "type", sa.Enum("credit", "debit", name="transactiontype"), nullable=False
        ),
        sa.Column(
            "status",
            sa.Enum("pending", "completed", name="transactionstatus"),
            nullable=False,
            server_default="completed",
        ),
        sa.Column(
            "business_id", sa.String(length=36), sa.ForeignKey("business_entities.id")
        ),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "recurring_frequency",
            sa.Enum("daily", "weekly", "monthly", "yearly", name="recurringfrequency"),
        ),
        sa.Column("next_recurring_date", sa.Date()),
        sa.Column("recurring_end_date", sa.Date()),
        *_timestamps(),
        sa.CheckConstraint("numeric_amount >= 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_user_category_date",
        "transactions",
        ["user_id", "category", "date"],
    )
    op.create_index(
        "ix_transactions_business_date", "transactions", ["business_id", "date"]
    )

    op.create_table(
        "budget_categories",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("limit", MONEY, nullable=False),
        sa.Column(
            "type",
            sa.Enum("income", "expense", name="budgettype"),
            nullable=False,
            server_default="expense",
        ),
        sa.Column("color", sa.String(length=60)),
        sa.Column("icon_key", sa.String(length=60)),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "type", "category", name="uq_budget_user_category"),
        sa.CheckConstraint('"limit" >= 0', name="ck_budget_limit_positive"),
    )

    op.create_table(
        "investments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, default=1),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("ticker", sa.String(length=20)),
        sa.Column(
            "type",
            sa.Enum(
                "stock",
                "etf",
                "crypto",
                "real_estate",
                "bond",
                "startup",
                "commodity",
                name="investmenttype",
            ),
            nullable=False,
        ),
        sa.Column(
            "strategy",
            sa.Enum("passive", "active", name="investmentstrategy"),
            nullable=False,
            server_default="passive",
        ),
        sa.Column("quantity", sa.Numeric(24, 8), nullable=False, server_default="0"),
        sa.Column("cost_basis", MONEY, nullable=False, server_default="0"),
        sa.Column("current_price", PRICE, nullable=False, server_default="0"),
        sa.Column("current_value", MONEY, nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="USD"),
        sa.Column("last_updated", sa.Date()),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
    )

    op.create_table(
        "business_metrics",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "business_id",
            sa.String(length=36),
            sa.ForeignKey("business_entities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("metric_id", sa.String(length=60), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("weight", sa.Numeric(6, 2), server_default="1"),
        sa.Column("target_value", PRICE),
        sa.Column("warning_threshold", PRICE),
        sa.Column("critical_threshold", PRICE),
        sa.Column(
            "is_higher_better", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column(
            "frequency",
            sa.Enum("daily", "weekly", "monthly", name="metricfrequency"),
            nullable=False,
            server_default="monthly",
        ),
        *_timestamps(),
        sa.UniqueConstraint("business_id", "metric_id", name="uq_business_metric"),
    )


def downgrade():
    op.drop_table("business_metrics")
    op.drop_table("investments")
    op.drop_table("budget_categories")
    op.drop_index("ix_transactions_business_date", table_name="transactions")
    op.drop_index("ix_transactions_user_category_date", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_accounts_user", table_name="accounts")
    op.drop_table("accounts")
    op.drop_table("business_entities")
