# liveorders/models/live_session.py
from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from liveorders.db.base import Base


class LiveSession(Base):
    """直播场次：订单 / 评论的来源维度（卖家 + 店铺）。"""

    __tablename__ = "live_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    seller_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    store_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    store_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<LiveSession id={self.id} seller={self.seller_id} store={self.store_id}>"
