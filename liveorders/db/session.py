# liveorders/db/session.py
# 统一的异步会话工厂 + FastAPI 依赖
from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from liveorders.core.config import get_settings
from liveorders.db.engine import create_async_engine_safe


def _resolve_dsn() -> str:
    # 优先级：LIVEORDERS_DATABASE_URL > settings.DATABASE_URL（含 DATABASE_URL 环境变量）
    return os.getenv("LIVEORDERS_DATABASE_URL") or get_settings().DATABASE_URL


@lru_cache
def get_async_engine() -> AsyncEngine:
    settings = get_settings()
    return create_async_engine_safe(_resolve_dsn(), echo=settings.SQL_ECHO)


@lru_cache
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=get_async_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with get_session_maker()() as session:
        yield session


async def close_engines() -> None:
    # 没建过引擎就不必新建一个再关掉
    if get_async_engine.cache_info().currsize:
        await get_async_engine().dispose()
