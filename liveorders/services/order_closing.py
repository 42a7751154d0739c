# liveorders/services/order_closing.py
from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.models.enums import OrderStatus
from liveorders.models.order import Order
from liveorders.services.notifier import BackInStockNotice
from liveorders.services.order_utils import ZERO, order_items, set_status
from liveorders.services.waiting_queue import WaitingQueue


async def close_order(
    session: AsyncSession, order: Order, status: OrderStatus, *, now: datetime
) -> Tuple[Dict[int, int], List[BackInStockNotice]]:
    """
    关单（过期 / 取消）：删除全部明细，生效行数量退回台账，同事务内跑等待队列转正。

    返回 ({configuration_id: 退回数量}, 通知列表)。等待行没占库存，只删不退。
    """
    released: Dict[int, int] = defaultdict(int)
    for item in await order_items(session, order.id):
        if item.status is None:
            released[item.product_configuration_id] += int(item.quantity)
        await session.delete(item)
    await session.flush()

    order.order_amount = ZERO
    order.total_amount = ZERO
    await set_status(session, order, status, at=now)

    notices: List[BackInStockNotice] = []
    # 按 configuration_id 升序加锁，避免并发关单互相死锁
    for configuration_id in sorted(released):
        _, promoted = await WaitingQueue.release_and_promote(
            session, configuration_id=configuration_id, qty=released[configuration_id], now=now
        )
        notices.extend(promoted)
    return dict(released), notices
