# liveorders/models/product_configuration.py
from __future__ import annotations

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from liveorders.db.base import Base


class ProductConfiguration(Base):
    """
    可售 SKU 组合（颜色 × 尺码）。

    - quantity：可用库存，只允许 InventoryLedger 改动，永不为负
    - waiting_credit：排队期间累计释放、尚未被等待单消费的数量
    """

    __tablename__ = "product_configurations"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_product_configurations_qty_nonneg"),
        CheckConstraint("waiting_credit >= 0", name="ck_product_configurations_credit_nonneg"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    color: Mapped[str | None] = mapped_column(String(64), nullable=True)
    size: Mapped[str | None] = mapped_column(String(64), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    waiting_credit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<ProductConfiguration id={self.id} qty={self.quantity} credit={self.waiting_credit}>"
