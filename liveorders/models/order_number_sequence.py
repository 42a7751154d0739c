# liveorders/models/order_number_sequence.py
from __future__ import annotations

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from liveorders.db.base import Base


class OrderNumberSequence(Base):
    """按天递增的订单号计数器（day = YYYYMMDD）。"""

    __tablename__ = "order_number_sequences"

    day: Mapped[str] = mapped_column(String(8), primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
