"""Unit reconciliation schema: products, units, audit events, barcodes, sales

Revision ID: 20261018_unit_reconciliation
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_unit_reconciliation"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("brand", sa.String(120), nullable=False),
        sa.Column("model", sa.String(255), nullable=False),
        sa.Column("category", sa.String(120), nullable=True),
        sa.Column("stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("threshold", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("has_serial", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("price_cents", sa.Integer(), nullable=True),
        sa.Column("min_price_cents", sa.Integer(), nullable=True),
        sa.Column("max_price_cents", sa.Integer(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_brand_model", ["brand", "model"], unique=False)
        batch_op.create_index("ix_products_has_serial", ["has_serial"], unique=False)

    # product_id is a weak reference (no FK): orphans must survive product deletion
    op.create_table(
        "product_units",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("serial_number", sa.String(128), nullable=False),
        sa.Column("barcode", sa.String(64), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="available"),
        sa.Column("price_cents", sa.Integer(), nullable=True),
        sa.Column("min_price_cents", sa.Integer(), nullable=True),
        sa.Column("max_price_cents", sa.Integer(), nullable=True),
        sa.Column("color", sa.String(64), nullable=True),
        sa.Column("storage", sa.Integer(), nullable=True),
        sa.Column("ram", sa.Integer(), nullable=True),
        sa.Column("battery_level", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "serial_number", name="uq_product_units_product_serial"),
        sa.UniqueConstraint("barcode"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("product_units", schema=None) as batch_op:
        batch_op.create_index("ix_product_units_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_product_units_status", ["status"], unique=False)
        batch_op.create_index("ix_product_units_serial", ["serial_number"], unique=False)
        batch_op.create_index("ix_product_units_product_status", ["product_id", "status"], unique=False)

    op.create_table(
        "unit_audit_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("unit_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("from_status", sa.String(16), nullable=True),
        sa.Column("to_status", sa.String(16), nullable=True),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("unit_audit_events", schema=None) as batch_op:
        batch_op.create_index("ix_unit_audit_events_unit_id", ["unit_id"], unique=False)
        batch_op.create_index("ix_unit_audit_events_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_unit_audit_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_unit_events_unit_occurred", ["unit_id", "occurred_at"], unique=False)

    op.create_table(
        "barcode_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("kind", name="uq_barcode_sequences_kind"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "barcode_registrations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("barcode", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("barcode", name="uq_barcode_registrations_barcode"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("barcode_registrations", schema=None) as batch_op:
        batch_op.create_index("ix_barcode_registrations_entity", ["entity_type", "entity_id"], unique=False)

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_number", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sale_number", name="uq_sales_sale_number"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.create_index("ix_sales_status", ["status"], unique=False)

    op.create_table(
        "sale_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("serial_number", sa.String(128), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("unit_price_cents", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("sale_items", schema=None) as batch_op:
        batch_op.create_index("ix_sale_items_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_sale_items_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_sale_items_product_serial", ["product_id", "serial_number"], unique=False)


def downgrade():
    with op.batch_alter_table("sale_items", schema=None) as batch_op:
        batch_op.drop_index("ix_sale_items_product_serial")
        batch_op.drop_index("ix_sale_items_product_id")
        batch_op.drop_index("ix_sale_items_sale_id")
    op.drop_table("sale_items")

    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.drop_index("ix_sales_status")
    op.drop_table("sales")

    with op.batch_alter_table("barcode_registrations", schema=None) as batch_op:
        batch_op.drop_index("ix_barcode_registrations_entity")
    op.drop_table("barcode_registrations")

    op.drop_table("barcode_sequences")

    with op.batch_alter_table("unit_audit_events", schema=None) as batch_op:
        batch_op.drop_index("ix_unit_events_unit_occurred")
        batch_op.drop_index("ix_unit_audit_events_event_type")
        batch_op.drop_index("ix_unit_audit_events_product_id")
        batch_op.drop_index("ix_unit_audit_events_unit_id")
    op.drop_table("unit_audit_events")

    with op.batch_alter_table("product_units", schema=None) as batch_op:
        batch_op.drop_index("ix_product_units_product_status")
        batch_op.drop_index("ix_product_units_serial")
        batch_op.drop_index("ix_product_units_status")
        batch_op.drop_index("ix_product_units_product_id")
    op.drop_table("product_units")

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.drop_index("ix_products_has_serial")
        batch_op.drop_index("ix_products_brand_model")
    op.drop_table("products")
