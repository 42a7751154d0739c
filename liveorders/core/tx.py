# liveorders/core/tx.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


@asynccontextmanager
async def tx_commit(session: AsyncSession):
    """
    Commit 事务：正常 begin/commit，异常时回滚。
    """
    async with session.begin():
        yield


async def run_in_tx(session: AsyncSession, fn: Callable[[], Awaitable[T]]) -> T:
    """
    在“已有事务”和“无事务”两种情况之间统一处理：

    - session 已在事务中：直接执行 fn，提交/回滚由调用方负责；
    - 否则：用 session.begin() 包裹 fn，结束即 commit。
    """
    if session.in_transaction():
        return await fn()
    async with tx_commit(session):
        return await fn()
