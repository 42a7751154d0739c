# liveorders/models/user.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from liveorders.core.clock import utc_now
from liveorders.db.base import Base


class User(Base):
    """
    买家 / 卖家账户。

    is_fake=True：直播评论进来、尚未登录的占位身份；身份归并后删除。
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_fake: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} fake={self.is_fake}>"
