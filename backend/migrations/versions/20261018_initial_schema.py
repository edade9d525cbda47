"""Initial SmartBill schema: products, inventory, bills, bill items, customers

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("brand", sa.String(128), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("barcode", sa.String(64), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("tax_percentage", sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column("stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku", name="uq_products_sku"),
        sa.UniqueConstraint("barcode", name="uq_products_barcode"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_name", ["name"], unique=False)
        batch_op.create_index("ix_products_category_active", ["category", "active"], unique=False)

    op.create_table(
        "inventory",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("barcode", sa.String(64), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("min_stock", sa.Integer(), nullable=False, server_default=sa.text("10")),
        sa.Column("max_stock", sa.Integer(), nullable=False, server_default=sa.text("100")),
        sa.Column("reorder_level", sa.Integer(), nullable=False, server_default=sa.text("20")),
        sa.Column("location", sa.String(128), nullable=False, server_default="Main Store"),
        sa.Column("warehouse", sa.String(128), nullable=False, server_default="Default"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="In Stock"),
        sa.Column("last_restocked", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", name="uq_inventory_product_id"),
        sa.UniqueConstraint("barcode", name="uq_inventory_barcode"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("inventory", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_status", ["status"], unique=False)
        batch_op.create_index("ix_inventory_warehouse_location", ["warehouse", "location"], unique=False)

    op.create_table(
        "bills",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("bill_number", sa.String(64), nullable=False),
        sa.Column("shop_name", sa.String(255), nullable=True),
        sa.Column("shop_address", sa.String(255), nullable=True),
        sa.Column("shop_phone", sa.String(32), nullable=True),
        sa.Column("gst_number", sa.String(32), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("customer_mobile", sa.String(32), nullable=True),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_percentage", sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_method", sa.String(16), nullable=False),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="Pending"),
        sa.Column("amount_received_cents", sa.Integer(), nullable=True),
        sa.Column("change_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("cashier", sa.String(128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("bill_number", name="uq_bills_bill_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("bills", schema=None) as batch_op:
        batch_op.create_index("ix_bills_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_bills_payment_method", ["payment_method"], unique=False)
        batch_op.create_index("ix_bills_payment_status", ["payment_status"], unique=False)
        batch_op.create_index("ix_bills_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_bills_deleted_at", ["deleted_at"], unique=False)
        batch_op.create_index("ix_bills_user_created", ["user_id", "created_at"], unique=False)
        batch_op.create_index("ix_bills_user_customer_mobile", ["user_id", "customer_mobile"], unique=False)

    op.create_table(
        "bill_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("bill_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("product_name", sa.String(255), nullable=True),
        sa.Column("barcode", sa.String(64), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("line_total_cents", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["bill_id"], ["bills.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("bill_items", schema=None) as batch_op:
        batch_op.create_index("ix_bill_items_bill_id", ["bill_id"], unique=False)
        batch_op.create_index("ix_bill_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("mobile_number", sa.String(32), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("city", sa.String(128), nullable=True),
        sa.Column("state", sa.String(128), nullable=True),
        sa.Column("zip_code", sa.String(16), nullable=True),
        sa.Column("gst_number", sa.String(32), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("total_bills", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_spent_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("customers", schema=None) as batch_op:
        batch_op.create_index("ix_customers_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_customers_user_mobile", ["user_id", "mobile_number"], unique=False)
        batch_op.create_index("ix_customers_user_name", ["user_id", "name"], unique=False)


def downgrade():
    op.drop_table("customers")
    op.drop_table("bill_items")
    op.drop_table("bills")
    op.drop_table("inventory")
    op.drop_table("products")
