"""Initial policy issuance schema.

Revision ID: 001
Revises:
Create Date: 2025-07-02

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

QUOTE_STATUSES = ("simulation", "saved", "awaiting_payment", "paid", "converted", "expired")
PAYMENT_STATUSES = ("pending", "succeeded", "failed", "refunded", "cancelled")
PAYMENT_METHODS = ("wave", "orange_money", "card", "bank_transfer", "cash", "cinetpay")
AGGREGATORS = ("generic", "wave", "orange_money", "cinetpay")
CONTRACT_STATUSES = ("active", "suspended", "terminated", "expired")
PRODUCT_TYPES = ("vie", "non_vie")


def _one_of(column: str, values: Sequence[str], table: str) -> sa.CheckConstraint:
    allowed = ", ".join(f"'{value}'" for value in values)
    return sa.CheckConstraint(f"{column} IN ({allowed})", name=f"ck_{table}_{column}")


def _id() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    ]


def _money(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.Numeric(14, 2),
        nullable=nullable,
        server_default=None if nullable else sa.text("0"),
    )


def _fk(name: str, target: str, nullable: bool = False, ondelete: str | None = None) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey(f"{target}.id", ondelete=ondelete),
        nullable=nullable,
    )


def _jsonb(name: str, default: str | None = None, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        postgresql.JSONB(),
        nullable=nullable,
        server_default=sa.text(f"'{default}'::jsonb") if default else None,
    )


def upgrade() -> None:
    """Create catalog, tariff, quote, payment and contract tables."""
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # Catalog, maintained by the back office
    op.create_table(
        "categories",
        _id(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("code", sa.String(3), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("code", name="uq_categories_code"),
        sa.CheckConstraint("code ~ '^[0-9]{3}$'", name="ck_categories_code"),
    )

    op.create_table(
        "products",
        _id(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("product_type", sa.String(20), nullable=False),
        sa.Column("pricing_mode", sa.String(20), nullable=False, server_default="grid"),
        _fk("category_id", "categories", nullable=True),
        sa.Column(
            "requires_beneficiaries", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("max_beneficiaries", sa.Integer(), nullable=False, server_default="0"),
        _money("default_deductible"),
        _money("default_cap", nullable=True),
        *_timestamps(),
        _one_of("product_type", PRODUCT_TYPES, "products"),
        _one_of("pricing_mode", ("grid", "formula"), "products"),
    )

    op.create_table(
        "pricing_criteria",
        _id(),
        _fk("product_id", "products", ondelete="CASCADE"),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False, server_default="categorical"),
        sa.Column("operator", sa.String(20), nullable=False, server_default="equal"),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("product_id", "name", name="uq_pricing_criteria_product_name"),
        _one_of("kind", ("numeric", "categorical", "boolean", "text"), "pricing_criteria"),
        _one_of(
            "operator",
            ("equal", "different", "greater", "less", "between", "not_between"),
            "pricing_criteria",
        ),
    )

    # Tariffs
    op.create_table(
        "rate_grids",
        _id(),
        _fk("product_id", "products", ondelete="CASCADE"),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("valid_from", sa.Date(), nullable=False),
        sa.Column("valid_to", sa.Date(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        *_timestamps(),
        _one_of("status", ("active", "inactive", "future"), "rate_grids"),
        sa.CheckConstraint(
            "valid_to IS NULL OR valid_to >= valid_from", name="ck_rate_grids_window"
        ),
    )
    op.create_index(
        "ix_rate_grids_product_status", "rate_grids", ["product_id", "status", "valid_from"]
    )

    op.create_table(
        "fixed_rates",
        _id(),
        _fk("grid_id", "rate_grids", ondelete="CASCADE"),
        _jsonb("criteria", default="{}"),
        _money("amount"),
        sa.CheckConstraint("amount >= 0", name="ck_fixed_rates_amount"),
    )
    op.create_index("ix_fixed_rates_grid_id", "fixed_rates", ["grid_id"])

    op.create_table(
        "formulas",
        _id(),
        _fk("product_id", "products", ondelete="CASCADE"),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("expression", sa.Text(), nullable=False),
        _jsonb("variables", default="{}"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        *_timestamps(),
        _one_of("status", ("active", "inactive"), "formulas"),
    )
    op.create_index("ix_formulas_product_status", "formulas", ["product_id", "status"])

    # Quotes
    op.create_table(
        "quotes",
        _id(),
        sa.Column("reference", sa.String(30), nullable=False),
        _fk("product_id", "products"),
        _fk("grid_id", "rate_grids", nullable=True),
        _fk("formula_id", "formulas", nullable=True),
        _fk("category_id", "categories", nullable=True),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=True),
        _jsonb("criteria", default="{}"),
        _money("premium"),
        _money("deductible"),
        _money("cap", nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="simulation"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        _jsonb("insured", nullable=True),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("reference", name="uq_quotes_reference"),
        _one_of("status", QUOTE_STATUSES, "quotes"),
        sa.CheckConstraint("premium >= 0", name="ck_quotes_premium"),
        sa.CheckConstraint(
            "expires_at IS NULL OR status = 'simulation'", name="ck_quotes_expiry"
        ),
    )
    op.create_index("ix_quotes_owner_id", "quotes", ["owner_id", "created_at"])
    op.create_index(
        "ix_quotes_simulation_expiry",
        "quotes",
        ["expires_at"],
        postgresql_where=sa.text("status = 'simulation'"),
    )

    # Contracts
    op.create_table(
        "contracts",
        _id(),
        sa.Column("number", sa.String(20), nullable=False),
        _fk("quote_id", "quotes"),
        _fk("product_id", "products"),
        sa.Column("product_type", sa.String(20), nullable=False),
        _fk("grid_id", "rate_grids", nullable=True),
        _fk("category_id", "categories"),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=True),
        _jsonb("criteria", default="{}"),
        _money("premium"),
        _money("deductible"),
        _money("cap", nullable=True),
        _jsonb("insured", nullable=True),
        sa.Column("coverage_start", sa.Date(), nullable=False),
        sa.Column("coverage_end", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("termination_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("number", "product_type", name="uq_contracts_number_product_type"),
        sa.UniqueConstraint("quote_id", name="uq_contracts_quote_id"),
        _one_of("status", CONTRACT_STATUSES, "contracts"),
        _one_of("product_type", PRODUCT_TYPES, "contracts"),
        sa.CheckConstraint("coverage_end > coverage_start", name="ck_contracts_coverage"),
    )
    op.create_index("ix_contracts_owner_id", "contracts", ["owner_id", "created_at"])

    op.create_table(
        "beneficiaries",
        _id(),
        _fk("contract_id", "contracts", ondelete="CASCADE"),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("relationship", sa.String(100), nullable=False),
        sa.Column("rank", sa.SmallInteger(), nullable=False, server_default="1"),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("share_percent", sa.Numeric(5, 2), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.CheckConstraint("rank IN (1, 2)", name="ck_beneficiaries_rank"),
        sa.UniqueConstraint("contract_id", "position", name="uq_beneficiaries_position"),
    )

    # Payments
    op.create_table(
        "payments",
        _id(),
        sa.Column("reference", sa.String(50), nullable=False),
        _fk("quote_id", "quotes"),
        _fk("contract_id", "contracts", nullable=True),
        _money("amount"),
        sa.Column("method", sa.String(20), nullable=False),
        sa.Column("aggregator", sa.String(20), nullable=False, server_default="generic"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("external_transaction_id", sa.String(200), nullable=True),
        sa.Column("operator_id", sa.String(200), nullable=True),
        _jsonb("callback_history", default="[]"),
        _jsonb("beneficiaries", default="[]"),
        sa.Column("failure_message", sa.Text(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("reference", name="uq_payments_reference"),
        _one_of("status", PAYMENT_STATUSES, "payments"),
        _one_of("method", PAYMENT_METHODS, "payments"),
        _one_of("aggregator", AGGREGATORS, "payments"),
        sa.CheckConstraint("amount >= 0", name="ck_payments_amount"),
    )
    op.create_index("ix_payments_quote_status", "payments", ["quote_id", "status"])
    op.create_index(
        "ix_payments_external_transaction_id", "payments", ["external_transaction_id"]
    )


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    for table in (
        "payments",
        "beneficiaries",
        "contracts",
        "quotes",
        "formulas",
        "fixed_rates",
        "rate_grids",
        "pricing_criteria",
        "products",
        "categories",
    ):
        op.drop_table(table)
