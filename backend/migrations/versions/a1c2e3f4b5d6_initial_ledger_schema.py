"""initial ledger and fulfillment schema

Revision ID: a1c2e3f4b5d6
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "a1c2e3f4b5d6"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(precision=20, scale=4)

role_enum = sa.Enum("ADMIN", "SUPERVISOR", "CASHIER", "PICKER", name="roleenum")
payment_method_enum = sa.Enum("CASH", "CARD", "CREDIT", name="paymentmethod")
cash_type_enum = sa.Enum("IN", "OUT", name="cashmovementtype")
order_status_enum = sa.Enum(
    "PENDING", "PROCESSING", "READY", "DELIVERED", name="orderstatus"
)
order_priority_enum = sa.Enum("LOW", "MEDIUM", "HIGH", name="orderpriority")
# Second use of the type, created along with "orders"
order_status_ref = postgresql.ENUM(
    "PENDING", "PROCESSING", "READY", "DELIVERED", name="orderstatus", create_type=False
)


def upgrade() -> None:
    # 1. Staff
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("username", sa.String(150), nullable=False, unique=True),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", role_enum, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("failed_login_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
    )

    # 2. Clients and catalog
    op.create_table(
        "clients",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("credit_limit", MONEY, nullable=False, server_default="0"),
        sa.Column("current_balance", MONEY, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("current_balance >= 0", name="ck_client_balance_non_negative"),
        sa.CheckConstraint("credit_limit >= 0", name="ck_client_credit_limit_non_negative"),
    )
    op.create_index("ix_clients_name", "clients", ["name"])

    op.create_table(
        "products",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(50), nullable=False, unique=True),
        sa.Column("unit_price", MONEY, nullable=False),
        sa.Column("stock", MONEY, nullable=False, server_default="0"),
        sa.Column("pack_quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_weighable", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("unit_price >= 0", name="ck_product_unit_price_non_negative"),
        sa.CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
        sa.CheckConstraint("pack_quantity >= 1", name="ck_product_pack_quantity_positive"),
    )
    op.create_index("ix_products_sku", "products", ["sku"])

    # 3. Sales
    op.create_table(
        "invoices",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("client_id", sa.Uuid(), sa.ForeignKey("clients.id"), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("payment_method", payment_method_enum, nullable=False),
        sa.Column("total", MONEY, nullable=False),
        sa.Column("remaining_balance", MONEY, nullable=False, server_default="0"),
        sa.Column("amount_tendered", MONEY, nullable=False, server_default="0"),
        sa.Column("change", MONEY, nullable=False, server_default="0"),
        sa.Column("card_auth_code", sa.String(50), nullable=True),
        sa.Column(
            "payment_history",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("sold_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("total > 0", name="ck_invoice_total_positive"),
        sa.CheckConstraint(
            "remaining_balance >= 0 AND remaining_balance <= total",
            name="ck_invoice_remaining_in_range",
        ),
    )
    op.create_index("ix_invoices_client_sold_at", "invoices", ["client_id", "sold_at"])

    op.create_table(
        "invoice_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("invoice_id", sa.Uuid(), sa.ForeignKey("invoices.id"), nullable=False),
        sa.Column("product_id", sa.Uuid(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("unit_price", MONEY, nullable=False),
        sa.Column("quantity", MONEY, nullable=False),
        sa.Column("line_subtotal", MONEY, nullable=False),
        sa.Column("stock_deducted", MONEY, nullable=False),
    )
    op.create_index("ix_invoice_items_invoice", "invoice_items", ["invoice_id"])

    # 4. Payments and drawer
    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("client_id", sa.Uuid(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("unallocated_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("previous_balance", MONEY, nullable=False),
        sa.Column("new_balance", MONEY, nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("recorded_by", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
    )
    op.create_index("ix_payments_client", "payments", ["client_id"])

    op.create_table(
        "payment_allocations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("payment_id", sa.Uuid(), sa.ForeignKey("payments.id"), nullable=False),
        sa.Column("invoice_id", sa.Uuid(), sa.ForeignKey("invoices.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("remaining_after", MONEY, nullable=False),
    )
    op.create_index("ix_payment_allocations_payment", "payment_allocations", ["payment_id"])
    op.create_index("ix_payment_allocations_invoice", "payment_allocations", ["invoice_id"])

    op.create_table(
        "cash_movements",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("type", cash_type_enum, nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("payment_id", sa.Uuid(), sa.ForeignKey("payments.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_cash_movement_amount_positive"),
    )
    op.create_index("ix_cash_movements_created_at", "cash_movements", ["created_at"])

    # 5. Fulfillment
    op.create_table(
        "orders",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("order_folio", sa.String(50), nullable=False, unique=True),
        sa.Column("client_id", sa.Uuid(), sa.ForeignKey("clients.id"), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_phone", sa.String(50), nullable=True),
        sa.Column("customer_address", sa.Text(), nullable=True),
        sa.Column("status", order_status_enum, nullable=False),
        sa.Column("picking_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("priority", order_priority_enum, nullable=False),
        sa.Column("total", MONEY, nullable=False, server_default="0"),
        sa.Column("advance_payment", MONEY, nullable=False, server_default="0"),
        sa.Column("balance", MONEY, nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("delivery_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_created_at", "orders", ["created_at"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("order_id", sa.Uuid(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Uuid(), sa.ForeignKey("products.id"), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(50), nullable=True),
        sa.Column("unit_price", MONEY, nullable=False, server_default="0"),
        sa.Column("quantity", MONEY, nullable=False),
        sa.Column("is_checked", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_order_items_order", "order_items", ["order_id"])

    op.create_table(
        "pending_authorizations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "order_id", sa.Uuid(), sa.ForeignKey("orders.id"), nullable=False, unique=True
        ),
        sa.Column("from_status", order_status_ref, nullable=False),
        sa.Column("to_status", order_status_ref, nullable=False),
        sa.Column("requested_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("failed_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )

    # 6. Audit trail
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("table_name", sa.String(100), nullable=False),
        sa.Column("record_id", sa.String(255), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("changed_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("new_values", postgresql.JSONB(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_audit_table_record", "audit_logs", ["table_name", "record_id"])
    op.create_index("ix_audit_created_at", "audit_logs", ["created_at"])
    op.create_index("ix_audit_action", "audit_logs", ["action"])


def downgrade() -> None:
    for table in (
        "audit_logs",
        "pending_authorizations",
        "order_items",
        "orders",
        "cash_movements",
        "payment_allocations",
        "payments",
        "invoice_items",
        "invoices",
        "products",
        "clients",
        "users",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (
        order_priority_enum,
        order_status_enum,
        cash_type_enum,
        payment_method_enum,
        role_enum,
    ):
        enum.drop(bind, checkfirst=True)
