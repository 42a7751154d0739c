"""initial schema: users / live_sessions / seller_settings / product_configurations / orders / order_items / order_statuses / order_number_sequences

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 10:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ORDER_STATUS = sa.Enum(
    "new", "waiting", "payed", "shipped", "canceled", "expired", name="order_status"
)
ORDER_ITEM_STATUS = sa.Enum("waiting", name="order_item_status")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("first_name", sa.String(255), nullable=True),
        sa.Column("is_fake", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "live_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "seller_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
        ),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("store_name", sa.String(255), nullable=True),
    )
    op.create_index("ix_live_sessions_seller_id", "live_sessions", ["seller_id"])
    op.create_index("ix_live_sessions_store_id", "live_sessions", ["store_id"])

    op.create_table(
        "seller_settings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "seller_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column(
            "order_timer",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=True,
        ),
    )

    op.create_table(
        "product_configurations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("color", sa.String(64), nullable=True),
        sa.Column("size", sa.String(64), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("waiting_credit", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("quantity >= 0", name="ck_product_configurations_qty_nonneg"),
        sa.CheckConstraint("waiting_credit >= 0", name="ck_product_configurations_credit_nonneg"),
    )
    op.create_index(
        "ix_product_configurations_product_id", "product_configurations", ["product_id"]
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_number", sa.String(64), nullable=True, unique=True),
        sa.Column(
            "user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
        ),
        sa.Column(
            "live_session_id",
            sa.Integer(),
            sa.ForeignKey("live_sessions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", ORDER_STATUS, nullable=False, server_default="new"),
        sa.Column("status_waiting", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("order_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("refund_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("expire_order_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_orders_user_id", "orders", ["user_id"])
    op.create_index(
        "ix_orders_user_session_status", "orders", ["user_id", "live_session_id", "status"]
    )
    op.create_index("ix_orders_status_expire", "orders", ["status", "expire_order_at"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=True
        ),
        sa.Column(
            "user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
        ),
        sa.Column("message_id", sa.String(128), nullable=True),
        sa.Column(
            "live_session_id",
            sa.Integer(),
            sa.ForeignKey("live_sessions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "product_configuration_id",
            sa.Integer(),
            sa.ForeignKey("product_configurations.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", ORDER_ITEM_STATUS, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_order_items_qty_pos"),
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])
    op.create_index("ix_order_items_user_id", "order_items", ["user_id"])
    op.create_index("ix_order_items_message_id", "order_items", ["message_id"])
    op.create_index(
        "ix_order_items_config_status_created",
        "order_items",
        ["product_configuration_id", "status", "created_at"],
    )

    op.create_table(
        "order_statuses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_order_statuses_order_id", "order_statuses", ["order_id"])

    op.create_table(
        "order_number_sequences",
        sa.Column("day", sa.String(8), primary_key=True),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
    )


def downgrade() -> None:
    op.drop_table("order_number_sequences")
    op.drop_index("ix_order_statuses_order_id", table_name="order_statuses")
    op.drop_table("order_statuses")
    op.drop_index("ix_order_items_config_status_created", table_name="order_items")
    op.drop_index("ix_order_items_message_id", table_name="order_items")
    op.drop_index("ix_order_items_user_id", table_name="order_items")
    op.drop_index("ix_order_items_order_id", table_name="order_items")
    op.drop_table("order_items")
    op.drop_index("ix_orders_status_expire", table_name="orders")
    op.drop_index("ix_orders_user_session_status", table_name="orders")
    op.drop_index("ix_orders_user_id", table_name="orders")
    op.drop_table("orders")
    op.drop_index("ix_product_configurations_product_id", table_name="product_configurations")
    op.drop_table("product_configurations")
    op.drop_table("seller_settings")
    op.drop_index("ix_live_sessions_store_id", table_name="live_sessions")
    op.drop_index("ix_live_sessions_seller_id", table_name="live_sessions")
    op.drop_table("live_sessions")
    op.drop_table("users")

    bind = op.get_bind()
    ORDER_ITEM_STATUS.drop(bind, checkfirst=True)
    ORDER_STATUS.drop(bind, checkfirst=True)
