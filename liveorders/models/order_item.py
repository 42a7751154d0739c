# liveorders/models/order_item.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from liveorders.core.clock import utc_now
from liveorders.db.base import Base
from liveorders.models.enums import OrderItemStatus, enum_values


class OrderItem(Base):
    """
    订单明细。

    status：
      - NULL     → 生效行，库存已预占
      - waiting  → 等待行（排队中，未占库存）；按 (created_at, id) 先进先出

    message_id：来源评论 id（身份归并的主键）；user_id：下单身份（可能是占位身份）。
    """

    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_qty_pos"),
        Index("ix_order_items_config_status_created", "product_configuration_id", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    order_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=True, index=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    message_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    live_session_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("live_sessions.id", ondelete="SET NULL"), nullable=True
    )
    product_configuration_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("product_configurations.id", ondelete="RESTRICT"), nullable=False
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[OrderItemStatus | None] = mapped_column(
        SAEnum(OrderItemStatus, name="order_item_status", values_callable=enum_values),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    @property
    def is_waiting(self) -> bool:
        return self.status == OrderItemStatus.WAITING

    @property
    def line_amount(self) -> Decimal:
        return Decimal(self.price) * int(self.quantity)

    def __repr__(self) -> str:
        return (
            f"<OrderItem id={self.id} order_id={self.order_id} "
            f"config={self.product_configuration_id} qty={self.quantity} status={self.status}>"
        )
