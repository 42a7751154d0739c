# liveorders/services/expiry_sweeper.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.core.clock import as_utc, utc_now
from liveorders.core.config import get_settings
from liveorders.metrics import EXPIRED_ORDERS
from liveorders.models.enums import TERMINAL_STATUSES, OrderStatus
from liveorders.models.order import Order
from liveorders.services.boundary import TxBoundService
from liveorders.services.errors import NotFoundError
from liveorders.services.order_closing import close_order
from liveorders.services.order_utils import load_order, order_to_dict

logger = logging.getLogger("liveorders.expiry")


class ExpirySweeper(TxBoundService):
    """
    订单过期：

    - expire_if_due：单张订单按需检查（买家打开订单 / 后台手动触发）
    - sweep_expired：批量扫描到期订单，逐张调用 expire_if_due；
                     由外部调度（cron）通过 python -m liveorders.jobs.order_expiry 触发

    过期 = 状态 expired、金额清零、expire_order_at=now、删除全部明细、
    生效数量退回台账并跑等待队列转正，全部在同一事务内。
    """

    async def expire_if_due(
        self,
        session: AsyncSession,
        *,
        order_id: int,
        user_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = now or utc_now()

        async def _inner():
            order = await load_order(session, order_id)
            # 别人的单按不存在处理
            if user_id is not None and order.user_id != user_id:
                raise NotFoundError(
                    f"order not found: id={order_id}", context={"order_id": order_id}
                )

            expire_at = as_utc(order.expire_order_at)
            if order.status in TERMINAL_STATUSES or expire_at is None or expire_at > now:
                return {"status": "NOOP", "order": order_to_dict(order), "released": {}}, []

            released, notices = await close_order(session, order, OrderStatus.EXPIRED, now=now)
            order.expire_order_at = now
            await session.flush()

            EXPIRED_ORDERS.inc()
            logger.info(
                "order expired: order=%s number=%s released=%s promoted=%s",
                order.id,
                order.order_number,
                released,
                len(notices),
            )
            return {
                "status": "EXPIRED",
                "order": order_to_dict(order),
                "released": released,
                "promoted": len(notices),
            }, notices

        return await self._run(session, "expire_if_due", _inner)

    async def find_due(
        self, session: AsyncSession, *, now: datetime, limit: int, exclude: Set[int]
    ) -> List[int]:
        """到期且未终态的订单 id（只读，不加锁；加锁在 expire_if_due 里逐张做）。"""
        stmt = (
            select(Order.id)
            .where(
                Order.status.in_([OrderStatus.NEW, OrderStatus.WAITING]),
                Order.expire_order_at.is_not(None),
                Order.expire_order_at <= now,
            )
            .order_by(Order.expire_order_at, Order.id)
            .limit(limit + len(exclude))
        )
        ids = [int(x) for x in (await session.execute(stmt)).scalars().all()]
        return [i for i in ids if i not in exclude][:limit]

    async def sweep_expired(
        self,
        session: AsyncSession,
        *,
        now: Optional[datetime] = None,
        batch_size: Optional[int] = None,
    ) -> int:
        """
        返回本次真正从 new/waiting → expired 的订单数。
        已经看过的 id 不再重复处理（NOOP 的单不会让循环原地打转）。

        事务由本方法自己管理：每张单单独一个事务，提交后再发到货通知，
        不会在持有行锁时等 webhook。调用方传入的 session 不应带未提交的改动。
        """
        now = now or utc_now()
        batch_size = batch_size or get_settings().EXPIRY_BATCH_SIZE

        seen: Set[int] = set()
        total_expired = 0
        while True:
            ids = await self.find_due(session, now=now, limit=batch_size, exclude=seen)
            # 扫描自动开启的只读事务先结束，expire_if_due 才会自开自提
            if session.in_transaction():
                await session.commit()
            if not ids:
                break

            for oid in ids:
                seen.add(oid)
                result = await self.expire_if_due(session, order_id=oid, now=now)
                if result.get("status") == "EXPIRED":
                    total_expired += 1

            if len(ids) < batch_size:
                break

        logger.info("expiry sweep done: expired=%s scanned=%s", total_expired, len(seen))
        return total_expired
