# liveorders/models/order.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from liveorders.core.clock import utc_now
from liveorders.db.base import Base
from liveorders.models.enums import OrderStatus, enum_values


class Order(Base):
    """
    订单主档（买家在某个直播场次里的“购物车即订单”）

    - order_number：YYYYMMDD-N；等待单在转正前可以为空，拆单时带 -WO- 后缀
    - 金额三件套 order_amount / total_amount / refund_amount：
      order_amount == total_amount == Σ(生效明细 price × quantity)，每次变更都重算
    - 时间列具时区，DB 统一存 UTC
    """

    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_user_session_status", "user_id", "live_session_id", "status"),
        Index("ix_orders_status_expire", "status", "expire_order_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_number: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    live_session_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("live_sessions.id", ondelete="SET NULL"), nullable=True
    )

    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(OrderStatus, name="order_status", values_callable=enum_values),
        nullable=False,
        default=OrderStatus.NEW,
    )
    # 整单都是等待行（拆出来的等待单 / 首行就缺货的单）
    status_waiting: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    order_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    expire_order_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} no={self.order_number!r} status={self.status} user={self.user_id}>"
