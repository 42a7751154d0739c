# liveorders/services/waiting_queue.py
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.core.clock import utc_now
from liveorders.metrics import PROMOTIONS
from liveorders.models.enums import TERMINAL_STATUSES, OrderItemStatus, OrderStatus
from liveorders.models.order_item import OrderItem
from liveorders.services.inventory_ledger import InventoryLedger, positive_qty
from liveorders.services.notifier import BackInStockNotice
from liveorders.services.order_numbers import next_order_number
from liveorders.services.order_timer import compute_expire_at
from liveorders.services.order_utils import (
    create_order,
    item_to_dict,
    load_order,
    recompute_totals,
    set_status,
)

logger = logging.getLogger("liveorders.waiting")


class WaitingQueue:
    """
    等待队列：order_items.status='waiting'，每个 SKU 组合一条 FIFO（created_at, id）。

    转正规则（on_release，与释放在同一事务）：
      - 有人排队时，本次释放量累加到 configuration.waiting_credit；
      - 队头需求 Q ≤ credit 且 Q ≤ 可用余量 → 转正（预占 Q，credit -= Q），继续看下一个队头；
      - 否则停止：队头满足不了时，后面的不许插队；也不做部分满足；
      - 队列排空时 credit 清零。
    """

    @staticmethod
    def _entries_stmt(configuration_id: int):
        return (
            select(OrderItem)
            .where(
                OrderItem.product_configuration_id == configuration_id,
                OrderItem.status == OrderItemStatus.WAITING,
            )
            .order_by(OrderItem.created_at, OrderItem.id)
        )

    @staticmethod
    async def enqueue(
        session: AsyncSession,
        *,
        user_id: int,
        configuration_id: int,
        quantity: int,
        price: Decimal,
        order_id: Optional[int] = None,
        live_session_id: Optional[int] = None,
        message_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> OrderItem:
        # 队列从空开始排：之前残留的 credit 不属于这次排队
        cfg = await InventoryLedger.load(session, configuration_id)
        if await WaitingQueue.pending_count(session, configuration_id=configuration_id) == 0:
            cfg.waiting_credit = 0

        entry = OrderItem(
            order_id=order_id,
            user_id=user_id,
            message_id=message_id,
            live_session_id=live_session_id,
            product_configuration_id=configuration_id,
            quantity=positive_qty(quantity, field="quantity"),
            price=price,
            status=OrderItemStatus.WAITING,
            created_at=now or utc_now(),
        )
        session.add(entry)
        await session.flush()
        logger.info(
            "waiting enqueued: item=%s config=%s qty=%s user=%s",
            entry.id,
            configuration_id,
            entry.quantity,
            user_id,
        )
        return entry

    @staticmethod
    async def head(session: AsyncSession, *, configuration_id: int) -> Optional[OrderItem]:
        stmt = WaitingQueue._entries_stmt(configuration_id).limit(1).with_for_update()
        return (await session.execute(stmt)).scalar_one_or_none()

    @staticmethod
    async def pending_count(session: AsyncSession, *, configuration_id: int) -> int:
        return int(
            await session.scalar(
                select(func.count(OrderItem.id)).where(
                    OrderItem.product_configuration_id == configuration_id,
                    OrderItem.status == OrderItemStatus.WAITING,
                )
            )
            or 0
        )

    @staticmethod
    async def on_release(
        session: AsyncSession,
        *,
        configuration_id: int,
        released_qty: int,
        now: Optional[datetime] = None,
    ) -> List[BackInStockNotice]:
        released_qty = positive_qty(released_qty, field="released_qty")
        now = now or utc_now()

        cfg = await InventoryLedger.load(session, configuration_id)
        if await WaitingQueue.pending_count(session, configuration_id=configuration_id) == 0:
            if cfg.waiting_credit:
                cfg.waiting_credit = 0
                await session.flush()
            return []

        cfg.waiting_credit = int(cfg.waiting_credit or 0) + released_qty
        await session.flush()

        notices: List[BackInStockNotice] = []
        while True:
            entry = await WaitingQueue.head(session, configuration_id=configuration_id)
            if entry is None:
                cfg = await InventoryLedger.load(session, configuration_id)
                cfg.waiting_credit = 0
                break

            need = int(entry.quantity)
            cfg = await InventoryLedger.load(session, configuration_id)
            if need > int(cfg.waiting_credit) or need > int(cfg.quantity):
                logger.info(
                    "waiting head not satisfiable: item=%s need=%s credit=%s available=%s",
                    entry.id,
                    need,
                    cfg.waiting_credit,
                    cfg.quantity,
                )
                break

            reserved = await InventoryLedger.reserve(
                session, configuration_id=configuration_id, qty=need
            )
            if not reserved.success:
                break

            cfg = await InventoryLedger.load(session, configuration_id)
            cfg.waiting_credit = int(cfg.waiting_credit) - need
            notices.append(await WaitingQueue._promote(session, entry, now=now))

        await session.flush()
        return notices

    @staticmethod
    async def release_and_promote(
        session: AsyncSession,
        *,
        configuration_id: int,
        qty: int,
        now: Optional[datetime] = None,
    ) -> Tuple[int, List[BackInStockNotice]]:
        """释放库存 + 同事务内跑队列转正。返回 (最终余量, 通知列表)。"""
        await InventoryLedger.release(session, configuration_id=configuration_id, qty=qty)
        notices = await WaitingQueue.on_release(
            session, configuration_id=configuration_id, released_qty=qty, now=now
        )
        remaining = await InventoryLedger.get_quantity(session, configuration_id=configuration_id)
        return remaining, notices

    @staticmethod
    async def _promote(
        session: AsyncSession, entry: OrderItem, *, now: datetime
    ) -> BackInStockNotice:
        entry.status = None

        order = None
        if entry.order_id is not None:
            order = await load_order(session, entry.order_id, missing_ok=True)

        if order is None or order.status in TERMINAL_STATUSES:
            order = await create_order(
                session,
                user_id=entry.user_id,
                live_session_id=entry.live_session_id,
                status=OrderStatus.NEW,
                order_number=await next_order_number(session, today=now.date()),
                expire_order_at=await compute_expire_at(
                    session, live_session_id=entry.live_session_id, now=now
                ),
            )
            entry.order_id = order.id
        elif order.status == OrderStatus.WAITING:
            order.status_waiting = False
            order.order_number = await next_order_number(session, today=now.date())
            order.expire_order_at = await compute_expire_at(
                session, live_session_id=order.live_session_id, now=now
            )
            order.sync_at = now
            await set_status(session, order, OrderStatus.NEW, at=now)

        await recompute_totals(session, order)
        PROMOTIONS.inc()
        logger.info(
            "waiting promoted: item=%s order=%s number=%s qty=%s",
            entry.id,
            order.id,
            order.order_number,
            entry.quantity,
        )
        return BackInStockNotice(
            item_id=entry.id,
            order_id=order.id,
            order_number=order.order_number,
            user_id=entry.user_id,
            message_id=entry.message_id,
            configuration_id=entry.product_configuration_id,
            quantity=int(entry.quantity),
        )

    @staticmethod
    async def list_entries(
        session: AsyncSession,
        *,
        configuration_id: Optional[int] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """后台等待列表（分页，FIFO 顺序）。"""
        base = select(OrderItem).where(OrderItem.status == OrderItemStatus.WAITING)
        count_stmt = select(func.count(OrderItem.id)).where(
            OrderItem.status == OrderItemStatus.WAITING
        )
        if configuration_id is not None:
            base = base.where(OrderItem.product_configuration_id == configuration_id)
            count_stmt = count_stmt.where(OrderItem.product_configuration_id == configuration_id)

        total = int(await session.scalar(count_stmt) or 0)
        rows = (
            await session.execute(
                base.order_by(OrderItem.created_at, OrderItem.id).limit(limit).offset(offset)
            )
        ).scalars().all()
        return {"total": total, "items": [item_to_dict(r) for r in rows]}
