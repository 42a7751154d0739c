# liveorders/api/deps.py
from __future__ import annotations

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.db.session import get_session as _get_session
from liveorders.services.notifier import Notifier
from liveorders.services.notifier import get_notifier as _default_notifier


# ---------------------------
# 异步 Session 依赖（业务用）
# ---------------------------
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    统一走 liveorders.db.session 里的 AsyncSession 工厂；测试里用 dependency_overrides 替换。
    """
    async for session in _get_session():
        yield session


def get_notifier() -> Notifier:
    """到货通知发送器（测试里替换成记录型）。"""
    return _default_notifier()
