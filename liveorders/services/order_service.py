# liveorders/services/order_service.py
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.core.clock import as_utc, utc_now
from liveorders.models.enums import OrderItemStatus, OrderStatus
from liveorders.models.order import Order
from liveorders.models.order_item import OrderItem
from liveorders.services.boundary import TxBoundService
from liveorders.services.errors import InvalidTransition, NotFoundError, ValidationError
from liveorders.services.inventory_ledger import InventoryLedger, positive_qty
from liveorders.services.notifier import BackInStockNotice
from liveorders.services.order_closing import close_order
from liveorders.services.order_numbers import next_order_number
from liveorders.services.order_timer import compute_expire_at
from liveorders.services.order_utils import (
    create_order,
    find_open_order,
    item_to_dict,
    load_item,
    load_order,
    order_items,
    order_to_dict,
    recompute_totals,
    set_status,
)
from liveorders.services.waiting_queue import WaitingQueue

logger = logging.getLogger("liveorders.orders")

# 明细还能改动的订单状态
_EDITABLE = frozenset({OrderStatus.NEW, OrderStatus.WAITING})


def _price(value) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("price must be a decimal", context={"price": value})
    if price < 0:
        raise ValidationError("price must be >= 0", context={"price": str(price)})
    return price.quantize(Decimal("0.01"))


class OrderService(TxBoundService):
    """
    订单聚合：

    - place_item：直播评论 → 预占；成功挂到买家当前场次的 open 单（没有就新建 new 单），
                  库存不足 → 单独一张 waiting 单 + 一条等待行，台账不动
    - remove_item / minus_item：退回库存 + 同事务跑等待队列转正，金额重算
    - mark_payed / mark_shipped / cancel_order：状态机迁移（全部写 order_statuses）
    - get_order / fetch_total / check_status_by_message：只读
    """

    # ------------------------------------------------------------------
    # 下单
    # ------------------------------------------------------------------
    async def place_item(
        self,
        session: AsyncSession,
        *,
        user_id: int,
        live_session_id: Optional[int],
        configuration_id: int,
        quantity: int,
        price,
        message_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        quantity = positive_qty(quantity, field="quantity")
        price = _price(price)
        now = now or utc_now()

        async def _inner():
            reserved = await InventoryLedger.reserve(
                session, configuration_id=configuration_id, qty=quantity
            )

            if not reserved.success:
                order = await create_order(
                    session,
                    user_id=user_id,
                    live_session_id=live_session_id,
                    status=OrderStatus.WAITING,
                )
                item = await WaitingQueue.enqueue(
                    session,
                    user_id=user_id,
                    configuration_id=configuration_id,
                    quantity=quantity,
                    price=price,
                    order_id=order.id,
                    live_session_id=live_session_id,
                    message_id=message_id,
                    now=now,
                )
                await recompute_totals(session, order)
                return {
                    "status": "WAITING",
                    "order": order_to_dict(order),
                    "item": item_to_dict(item),
                    "available": reserved.available,
                }, []

            order = await find_open_order(
                session, user_id=user_id, live_session_id=live_session_id
            )
            if order is None:
                order = await create_order(
                    session,
                    user_id=user_id,
                    live_session_id=live_session_id,
                    status=OrderStatus.NEW,
                    order_number=await next_order_number(session, today=now.date()),
                    expire_order_at=await compute_expire_at(
                        session, live_session_id=live_session_id, now=now
                    ),
                )

            item = OrderItem(
                order_id=order.id,
                user_id=user_id,
                message_id=message_id,
                live_session_id=live_session_id,
                product_configuration_id=configuration_id,
                quantity=quantity,
                price=price,
                status=None,
                created_at=now,
            )
            session.add(item)
            order.sync_at = now
            await recompute_totals(session, order)
            return {
                "status": "RESERVED",
                "order": order_to_dict(order),
                "item": item_to_dict(item),
                "available": reserved.available,
            }, []

        return await self._run(session, "place_item", _inner)

    # ------------------------------------------------------------------
    # 删行 / 减一
    # ------------------------------------------------------------------
    async def _remove(
        self, session: AsyncSession, item: OrderItem, order: Optional[Order], *, now: datetime
    ) -> tuple[int, List[BackInStockNotice]]:
        released = int(item.quantity) if item.status is None else 0
        configuration_id = item.product_configuration_id
        await session.delete(item)
        await session.flush()

        notices: List[BackInStockNotice] = []
        if released:
            _, notices = await WaitingQueue.release_and_promote(
                session, configuration_id=configuration_id, qty=released, now=now
            )
        if order is not None:
            order.sync_at = now
            await recompute_totals(session, order)
        return released, notices

    async def _editable_item(self, session: AsyncSession, item_id: int):
        item = await load_item(session, item_id)
        order = None
        if item.order_id is not None:
            order = await load_order(session, item.order_id, missing_ok=True)
        if order is not None and order.status not in _EDITABLE:
            raise InvalidTransition(
                f"order {order.id} is {order.status.value}; items are frozen",
                context={"order_id": order.id, "status": order.status.value},
            )
        return item, order

    async def remove_item(
        self, session: AsyncSession, *, item_id: int, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        now = now or utc_now()

        async def _inner():
            item, order = await self._editable_item(session, item_id)
            order_id = item.order_id
            released, notices = await self._remove(session, item, order, now=now)
            logger.info("item removed: item=%s order=%s released=%s", item_id, order_id, released)
            return {
                "status": "OK",
                "item_id": item_id,
                "released": released,
                "promoted": len(notices),
                "order": order_to_dict(order) if order is not None else None,
            }, notices

        return await self._run(session, "remove_item", _inner)

    async def minus_item(
        self, session: AsyncSession, *, item_id: int, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """数量减一；减到 0 等同删行。"""
        now = now or utc_now()

        async def _inner():
            item, order = await self._editable_item(session, item_id)

            if int(item.quantity) <= 1:
                released, notices = await self._remove(session, item, order, now=now)
                return {
                    "status": "REMOVED",
                    "item_id": item_id,
                    "released": released,
                    "promoted": len(notices),
                    "order": order_to_dict(order) if order is not None else None,
                }, notices

            item.quantity = int(item.quantity) - 1
            await session.flush()

            notices: List[BackInStockNotice] = []
            released = 0
            if item.status is None:
                released = 1
                _, notices = await WaitingQueue.release_and_promote(
                    session, configuration_id=item.product_configuration_id, qty=1, now=now
                )
            if order is not None:
                order.sync_at = now
                await recompute_totals(session, order)
            return {
                "status": "OK",
                "item": item_to_dict(item),
                "released": released,
                "promoted": len(notices),
                "order": order_to_dict(order) if order is not None else None,
            }, notices

        return await self._run(session, "minus_item", _inner)

    # ------------------------------------------------------------------
    # 状态机
    # ------------------------------------------------------------------
    async def mark_payed(
        self, session: AsyncSession, *, order_id: int, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        now = now or utc_now()

        async def _inner():
            order = await load_order(session, order_id)
            if order.status != OrderStatus.NEW:
                raise InvalidTransition(
                    f"cannot pay order in status={order.status.value}",
                    context={"order_id": order_id, "status": order.status.value},
                )
            expire_at = as_utc(order.expire_order_at)
            if expire_at is not None and expire_at <= now:
                raise InvalidTransition(
                    "order reservation has expired",
                    context={"order_id": order_id, "expire_order_at": expire_at.isoformat()},
                )
            if not await order_items(session, order.id, active_only=True):
                raise InvalidTransition("cannot pay an empty order", context={"order_id": order_id})

            await set_status(session, order, OrderStatus.PAYED, at=now)
            return order_to_dict(order), []

        return await self._run(session, "mark_payed", _inner)

    async def mark_shipped(
        self, session: AsyncSession, *, order_ids: Sequence[int], now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """批量发货：只有 payed 的单会变 shipped，其余原样报告为 skipped。"""
        if not order_ids:
            raise ValidationError("order_ids must not be empty")
        now = now or utc_now()

        async def _inner():
            shipped: List[int] = []
            skipped: List[Dict[str, Any]] = []
            for oid in sorted(set(int(x) for x in order_ids)):
                order = await load_order(session, oid, missing_ok=True)
                if order is None:
                    skipped.append({"order_id": oid, "reason": "not_found"})
                    continue
                if order.status != OrderStatus.PAYED:
                    skipped.append({"order_id": oid, "reason": f"status={order.status.value}"})
                    continue
                await set_status(session, order, OrderStatus.SHIPPED, at=now)
                shipped.append(oid)
            logger.info("orders shipped: %s skipped: %s", shipped, len(skipped))
            return {"shipped": shipped, "skipped": skipped}, []

        return await self._run(session, "mark_shipped", _inner)

    async def cancel_order(
        self, session: AsyncSession, *, order_id: int, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        now = now or utc_now()

        async def _inner():
            order = await load_order(session, order_id)
            if order.status not in _EDITABLE:
                raise InvalidTransition(
                    f"cannot cancel order in status={order.status.value}",
                    context={"order_id": order_id, "status": order.status.value},
                )
            released, notices = await close_order(session, order, OrderStatus.CANCELED, now=now)
            logger.info("order canceled: order=%s released=%s", order_id, released)
            return {
                "status": "CANCELED",
                "order": order_to_dict(order),
                "released": released,
                "promoted": len(notices),
            }, notices

        return await self._run(session, "cancel_order", _inner)

    # ------------------------------------------------------------------
    # 只读
    # ------------------------------------------------------------------
    async def get_order(self, session: AsyncSession, *, order_id: int) -> Dict[str, Any]:
        async def _inner():
            order = await load_order(session, order_id, lock=False)
            return order_to_dict(order, await order_items(session, order.id)), []

        return await self._run(session, "get_order", _inner)

    async def fetch_total(self, session: AsyncSession, *, order_number: str) -> Dict[str, Any]:
        async def _inner():
            order = (
                await session.execute(select(Order).where(Order.order_number == order_number))
            ).scalar_one_or_none()
            if order is None:
                raise NotFoundError(
                    f"order not found: number={order_number}",
                    context={"order_number": order_number},
                )
            return {
                "order_id": order.id,
                "order_number": order.order_number,
                "status": order.status.value,
                "order_amount": order.order_amount,
                "total_amount": order.total_amount,
                "refund_amount": order.refund_amount,
            }, []

        return await self._run(session, "fetch_total", _inner)

    async def check_status_by_message(
        self, session: AsyncSession, *, message_id: str
    ) -> List[Dict[str, Any]]:
        """某条评论落下来的每一行：当前挂在哪张单、单子什么状态。"""

        async def _inner():
            rows = (
                await session.execute(
                    select(OrderItem, Order)
                    .outerjoin(Order, Order.id == OrderItem.order_id)
                    .where(OrderItem.message_id == message_id)
                    .order_by(OrderItem.created_at, OrderItem.id)
                )
            ).all()
            if not rows:
                raise NotFoundError(
                    f"no order items for message={message_id}", context={"message_id": message_id}
                )
            out = []
            for item, order in rows:
                out.append(
                    {
                        "item_id": item.id,
                        "item_status": (
                            OrderItemStatus.WAITING.value if item.is_waiting else None
                        ),
                        "order_id": order.id if order is not None else None,
                        "order_number": order.order_number if order is not None else None,
                        "order_status": order.status.value if order is not None else None,
                    }
                )
            return out, []

        return await self._run(session, "check_status_by_message", _inner)
