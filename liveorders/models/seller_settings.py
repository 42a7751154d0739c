# liveorders/models/seller_settings.py
from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, ForeignKey, Integer
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from liveorders.db.base import Base


class SellerSettings(Base):
    """
    卖家设置。order_timer 形如 {"hours": 2} / {"days": 1} / {"minutes": 30}，
    三个单位恰好配置一个。
    """

    __tablename__ = "seller_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    seller_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    order_timer: Mapped[dict[str, Any] | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )
