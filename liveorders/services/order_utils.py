# liveorders/services/order_utils.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.core.clock import as_utc, utc_now
from liveorders.models.enums import OrderStatus
from liveorders.models.order import Order
from liveorders.models.order_item import OrderItem
from liveorders.models.order_status import OrderStatusHistory
from liveorders.services.errors import NotFoundError

ZERO = Decimal("0.00")


async def load_order(
    session: AsyncSession, order_id: int, *, lock: bool = True, missing_ok: bool = False
) -> Optional[Order]:
    stmt = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
    if lock:
        stmt = stmt.with_for_update()
    order = (await session.execute(stmt)).scalar_one_or_none()
    if order is None and not missing_ok:
        raise NotFoundError(f"order not found: id={order_id}", context={"order_id": order_id})
    return order


async def load_item(session: AsyncSession, item_id: int, *, lock: bool = True) -> OrderItem:
    stmt = select(OrderItem).where(OrderItem.id == item_id).execution_options(populate_existing=True)
    if lock:
        stmt = stmt.with_for_update()
    item = (await session.execute(stmt)).scalar_one_or_none()
    if item is None:
        raise NotFoundError(f"order item not found: id={item_id}", context={"item_id": item_id})
    return item


async def order_items(
    session: AsyncSession, order_id: int, *, active_only: bool = False
) -> List[OrderItem]:
    stmt = select(OrderItem).where(OrderItem.order_id == order_id)
    if active_only:
        stmt = stmt.where(OrderItem.status.is_(None))
    stmt = stmt.order_by(OrderItem.created_at, OrderItem.id)
    return list((await session.execute(stmt)).scalars().all())


async def recompute_totals(session: AsyncSession, order: Order) -> Decimal:
    """
    金额一律从明细重算：order_amount = total_amount = Σ 生效行 price × quantity。
    """
    await session.flush()
    items = await order_items(session, order.id, active_only=True)
    amount = sum((i.line_amount for i in items), ZERO).quantize(Decimal("0.01"))
    order.order_amount = amount
    order.total_amount = amount
    await session.flush()
    return amount


async def set_status(
    session: AsyncSession, order: Order, status: OrderStatus, *, at: Optional[datetime] = None
) -> None:
    """改状态并追加一条 order_statuses 流水。"""
    order.status = status
    session.add(OrderStatusHistory(order_id=order.id, status=status.value, created_at=at or utc_now()))
    await session.flush()


async def create_order(
    session: AsyncSession,
    *,
    user_id: int,
    live_session_id: Optional[int],
    status: OrderStatus,
    order_number: Optional[str] = None,
    expire_order_at: Optional[datetime] = None,
) -> Order:
    now = utc_now()
    order = Order(
        user_id=user_id,
        live_session_id=live_session_id,
        status=status,
        status_waiting=status == OrderStatus.WAITING,
        order_number=order_number,
        order_amount=ZERO,
        total_amount=ZERO,
        refund_amount=ZERO,
        expire_order_at=expire_order_at,
        sync_at=now,
        created_at=now,
        updated_at=now,
    )
    session.add(order)
    await session.flush()
    session.add(OrderStatusHistory(order_id=order.id, status=status.value, created_at=now))
    await session.flush()
    return order


async def find_open_order(
    session: AsyncSession,
    *,
    user_id: int,
    live_session_id: Optional[int],
    exclude_order_id: Optional[int] = None,
) -> Optional[Order]:
    """买家在同一直播场次里“未付款、非等待”的那张单（最新一张）。"""
    stmt = select(Order).where(
        Order.user_id == user_id,
        Order.status == OrderStatus.NEW,
        Order.status_waiting.is_(False),
    )
    if live_session_id is None:
        stmt = stmt.where(Order.live_session_id.is_(None))
    else:
        stmt = stmt.where(Order.live_session_id == live_session_id)
    if exclude_order_id is not None:
        stmt = stmt.where(Order.id != exclude_order_id)
    stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc()).limit(1).with_for_update()
    return (await session.execute(stmt)).scalar_one_or_none()


async def delete_order(session: AsyncSession, order: Order) -> None:
    """删空单：先删流水再删头（不依赖库级联）。"""
    await session.execute(delete(OrderStatusHistory).where(OrderStatusHistory.order_id == order.id))
    await session.delete(order)
    await session.flush()


def item_to_dict(item: OrderItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "order_id": item.order_id,
        "user_id": item.user_id,
        "message_id": item.message_id,
        "live_session_id": item.live_session_id,
        "configuration_id": item.product_configuration_id,
        "quantity": int(item.quantity),
        "price": Decimal(item.price),
        "status": item.status.value if item.status is not None else None,
        "created_at": as_utc(item.created_at),
    }


def order_to_dict(order: Order, items: Optional[List[OrderItem]] = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "live_session_id": order.live_session_id,
        "status": order.status.value,
        "status_waiting": bool(order.status_waiting),
        "order_amount": Decimal(order.order_amount),
        "total_amount": Decimal(order.total_amount),
        "refund_amount": Decimal(order.refund_amount),
        "expire_order_at": as_utc(order.expire_order_at),
        "created_at": as_utc(order.created_at),
    }
    if items is not None:
        out["items"] = [item_to_dict(i) for i in items]
    return out
