# liveorders/services/boundary.py
from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.core.tx import run_in_tx
from liveorders.services.errors import OrderDomainError, PersistenceError
from liveorders.services.notifier import BackInStockNotice, Notifier, dispatch_notices, get_notifier

logger = logging.getLogger("liveorders.service")

T = TypeVar("T")

Outcome = Tuple[T, List[BackInStockNotice]]


class TxBoundService:
    """
    对外操作的统一边界：

    - 事务：run_in_tx（无事务时自开自提，已有事务时由调用方提交）
    - 业务异常（OrderDomainError 子类）原样抛出；
    - SQLAlchemy 异常记日志后包成 PersistenceError，不把底层存储异常漏给调用方；
    - 到货通知在事务结束后发送，失败只记日志。
    """

    def __init__(self, notifier: Optional[Notifier] = None) -> None:
        self.notifier = notifier or get_notifier()

    async def _run(self, session: AsyncSession, op: str, fn: Callable[[], Awaitable[Outcome]]) -> T:
        try:
            result, notices = await run_in_tx(session, fn)
        except OrderDomainError:
            raise
        except SQLAlchemyError as e:
            logger.exception("%s failed: %s", op, e)
            raise PersistenceError(op) from e

        if notices:
            await dispatch_notices(self.notifier, notices)
        return result
