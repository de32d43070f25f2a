"""Initial LMIS schema: facilities, users, sessions, orders, products, boxes, box events

Revision ID: 20261019_lmis_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_lmis_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=nullable)


def upgrade():
    op.create_table(
        "facilities",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("type = 'FACILITY' OR warehouse_id IS NULL", name="ck_facilities_warehouse_has_no_parent"),
        sa.ForeignKeyConstraint(["warehouse_id"], ["facilities.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_facilities_code", "facilities", ["code"], unique=True)
    op.create_index("ix_facilities_type", "facilities", ["type"], unique=False)
    op.create_index("ix_facilities_warehouse_id", "facilities", ["warehouse_id"], unique=False)
    op.create_index("ix_facilities_type_name", "facilities", ["type", "name"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("facility_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["facility_id"], ["facilities.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_facility_id", "users", ["facility_id"], unique=False)
    op.create_index("ix_users_role", "users", ["role"], unique=False)

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(length=255), nullable=False),
        _timestamp("created_at"),
        _timestamp("last_used_at"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("user_agent", sa.String(length=255), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("is_revoked", sa.Boolean(), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_reason", sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_session_tokens_user_id", "session_tokens", ["user_id"], unique=False)
    op.create_index("ix_session_tokens_token_hash", "session_tokens", ["token_hash"], unique=True)
    op.create_index("ix_session_tokens_expires_at", "session_tokens", ["expires_at"], unique=False)
    op.create_index("ix_session_tokens_user_active", "session_tokens", ["user_id", "is_revoked"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(length=128), nullable=False),
        sa.Column("donor_name", sa.String(length=255), nullable=True),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_orders_order_number", "orders", ["order_number"], unique=True)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_code", "products", ["code"], unique=True)

    op.create_table(
        "order_box_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id", name="uq_order_box_sequences_order"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_order_box_sequences_order_id", "order_box_sequences", ["order_id"], unique=False)

    op.create_table(
        "boxes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("box_uid", sa.String(length=191), nullable=False),
        sa.Column("sequence_number", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("batch_no", sa.String(length=64), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("current_facility_id", sa.Integer(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["current_facility_id"], ["facilities.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_boxes_box_uid", "boxes", ["box_uid"], unique=True)
    op.create_index("ix_boxes_order_id", "boxes", ["order_id"], unique=False)
    op.create_index("ix_boxes_product_id", "boxes", ["product_id"], unique=False)
    op.create_index("ix_boxes_batch_no", "boxes", ["batch_no"], unique=False)
    op.create_index("ix_boxes_expiry_date", "boxes", ["expiry_date"], unique=False)
    op.create_index("ix_boxes_status", "boxes", ["status"], unique=False)
    op.create_index("ix_boxes_current_facility_id", "boxes", ["current_facility_id"], unique=False)
    op.create_index("ix_boxes_facility_status", "boxes", ["current_facility_id", "status"], unique=False)
    op.create_index("ix_boxes_order_sequence", "boxes", ["order_id", "sequence_number"], unique=False)

    op.create_table(
        "box_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("box_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("performed_by_user_id", sa.Integer(), nullable=False),
        sa.Column("from_facility_id", sa.Integer(), nullable=True),
        sa.Column("to_facility_id", sa.Integer(), nullable=True),
        sa.Column("note", sa.String(length=255), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["box_id"], ["boxes.id"]),
        sa.ForeignKeyConstraint(["performed_by_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["from_facility_id"], ["facilities.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["to_facility_id"], ["facilities.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_box_events_box_id", "box_events", ["box_id"], unique=False)
    op.create_index("ix_box_events_type", "box_events", ["type"], unique=False)
    op.create_index("ix_box_events_performed_by_user_id", "box_events", ["performed_by_user_id"], unique=False)
    op.create_index("ix_box_events_from_facility_id", "box_events", ["from_facility_id"], unique=False)
    op.create_index("ix_box_events_to_facility_id", "box_events", ["to_facility_id"], unique=False)
    op.create_index("ix_box_events_created_at", "box_events", ["created_at"], unique=False)
    op.create_index("ix_box_events_box_type_created", "box_events", ["box_id", "type", "created_at"], unique=False)


def downgrade():
    op.drop_table("box_events")
    op.drop_table("boxes")
    op.drop_table("order_box_sequences")
    op.drop_table("products")
    op.drop_table("orders")
    op.drop_table("session_tokens")
    op.drop_table("users")
    op.drop_table("facilities")
