"""payment reconciliation schema

Revision ID: 20261018_01
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261018_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _money(name: str, nullable: bool = False, default: bool = True) -> sa.Column:
    return sa.Column(
        name,
        sa.Numeric(12, 2),
        nullable=nullable,
        server_default=sa.text("0") if default else None,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def _create_users() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_id", "users", ["id"], unique=False)
    op.create_index("ix_users_email", "users", ["email"], unique=True)


def _create_vendors() -> None:
    op.create_table(
        "vendors",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False, unique=True),
        sa.Column("business_name", sa.String(length=255), nullable=False),
        sa.Column("notification_email", sa.String(length=255), nullable=True),
        sa.Column("subscription_status", sa.String(length=32), nullable=False, server_default="inactive"),
        sa.Column("subscription_plan", sa.String(length=64), nullable=True),
        sa.Column("subscription_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_vendors_id", "vendors", ["id"], unique=False)


def _create_vendor_balances() -> None:
    op.create_table(
        "vendor_balances",
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), primary_key=True, nullable=False),
        _money("available_balance"),
        _money("pending_balance"),
        _money("total_earned"),
        _money("total_withdrawn"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def _create_products() -> None:
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        _money("price", default=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("is_digital", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("digital_file_url", sa.String(length=1024), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_products_id", "products", ["id"], unique=False)
    op.create_index("ix_products_vendor_id", "products", ["vendor_id"], unique=False)


def _create_orders() -> None:
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("order_number", sa.String(length=64), nullable=False),
        sa.Column("reference_code", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        _money("subtotal"),
        _money("tax_amount"),
        _money("shipping_amount"),
        _money("discount_amount"),
        _money("total_amount", default=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("fulfillment_status", sa.String(length=32), nullable=False, server_default="pending"),
        *_timestamps(),
    )
    op.create_index("ix_orders_id", "orders", ["id"], unique=False)
    op.create_index("ix_orders_order_number", "orders", ["order_number"], unique=True)
    op.create_index("ix_orders_reference_code", "orders", ["reference_code"], unique=True)
    op.create_index("ix_orders_user_id", "orders", ["user_id"], unique=False)
    op.create_index("ix_orders_status", "orders", ["status"], unique=False)
    op.create_index("ix_orders_payment_status", "orders", ["payment_status"], unique=False)
    op.create_index("ix_orders_created_at", "orders", ["created_at"], unique=False)


def _create_order_items() -> None:
    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        _money("price", default=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        _money("total", default=False),
        sa.Column("is_digital", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("digital_file_url", sa.String(length=1024), nullable=True),
    )
    op.create_index("ix_order_items_id", "order_items", ["id"], unique=False)
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"], unique=False)
    op.create_index("ix_order_items_vendor_id", "order_items", ["vendor_id"], unique=False)


def _create_payment_transactions() -> None:
    op.create_table(
        "payment_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("transaction_id", sa.String(length=255), nullable=False),
        sa.Column("reference_code", sa.String(length=64), nullable=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=True),
        _money("amount", default=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="initiated"),
        sa.Column("gateway_payload", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_payment_transactions_id", "payment_transactions", ["id"], unique=False)
    op.create_index(
        "ix_payment_transactions_transaction_id", "payment_transactions", ["transaction_id"], unique=True
    )
    op.create_index(
        "ix_payment_transactions_reference_code", "payment_transactions", ["reference_code"], unique=False
    )
    op.create_index("ix_payment_transactions_order_id", "payment_transactions", ["order_id"], unique=False)
    op.create_index("ix_payment_transactions_status", "payment_transactions", ["status"], unique=False)


def _create_vendor_subscriptions() -> None:
    op.create_table(
        "vendor_subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("plan_id", sa.String(length=64), nullable=False),
        sa.Column("duration", sa.String(length=16), nullable=False),
        _money("amount", default=False),
        sa.Column("currency", sa.String(length=8), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("provider", sa.String(length=32), nullable=True),
        sa.Column("gateway_transaction_id", sa.String(length=255), nullable=True),
        sa.Column("transaction_number", sa.String(length=64), nullable=False, unique=True),
        sa.Column("payment_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("approval_source", sa.String(length=16), nullable=True),
        sa.Column("gateway_payload", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_vendor_subscriptions_id", "vendor_subscriptions", ["id"], unique=False)
    op.create_index("ix_vendor_subscriptions_user_id", "vendor_subscriptions", ["user_id"], unique=False)
    op.create_index("ix_vendor_subscriptions_status", "vendor_subscriptions", ["status"], unique=False)
    op.create_index(
        "ix_vendor_subscriptions_gateway_transaction_id",
        "vendor_subscriptions",
        ["gateway_transaction_id"],
        unique=False,
    )


def _create_auto_process_logs() -> None:
    op.create_table(
        "auto_process_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("run_type", sa.String(length=32), nullable=False),
        sa.Column("manual", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("processed_orders", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_orders", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unresolved_orders", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("execution_time", sa.Float(), nullable=True),
        sa.Column("errors", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_auto_process_logs_id", "auto_process_logs", ["id"], unique=False)
    op.create_index("ix_auto_process_logs_run_type", "auto_process_logs", ["run_type"], unique=False)
    op.create_index("ix_auto_process_logs_created_at", "auto_process_logs", ["created_at"], unique=False)


def _create_admin_action_logs() -> None:
    op.create_table(
        "admin_action_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("admin_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("target_type", sa.String(length=32), nullable=False),
        sa.Column("target_id", sa.String(length=255), nullable=False),
        sa.Column("outcome", sa.String(length=16), nullable=False),
        sa.Column("reason", sa.String(length=64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("before_state", sa.JSON(), nullable=True),
        sa.Column("after_state", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_admin_action_logs_id", "admin_action_logs", ["id"], unique=False)
    op.create_index("ix_admin_action_logs_admin_id", "admin_action_logs", ["admin_id"], unique=False)
    op.create_index("ix_admin_action_logs_created_at", "admin_action_logs", ["created_at"], unique=False)


# Dependency order: referenced tables first.
TABLES = [
    ("users", _create_users),
    ("vendors", _create_vendors),
    ("vendor_balances", _create_vendor_balances),
    ("products", _create_products),
    ("orders", _create_orders),
    ("order_items", _create_order_items),
    ("payment_transactions", _create_payment_transactions),
    ("vendor_subscriptions", _create_vendor_subscriptions),
    ("auto_process_logs", _create_auto_process_logs),
    ("admin_action_logs", _create_admin_action_logs),
]


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    for table_name, create in TABLES:
        if not _table_exists(inspector, table_name):
            create()


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    for table_name, _ in reversed(TABLES):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)
