from datetime import datetime, timezone
from decimal import Decimal
from typing import List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.models import OrderItem, OrderItemStatus
from liveorders.services.inventory_ledger import InventoryLedger

UTC = timezone.utc

# 固定“现在”：订单号按天生成，过期按小时算
T0 = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
PRICE = Decimal("10.50")


async def qty_of(session: AsyncSession, configuration_id: int) -> int:
    """台账余量（populate_existing 重读，绕过身份映射里的旧值）。"""
    return await InventoryLedger.get_quantity(session, configuration_id=configuration_id)


async def credit_of(session: AsyncSession, configuration_id: int) -> int:
    cfg = await InventoryLedger.load(session, configuration_id, lock=False)
    return int(cfg.waiting_credit)


async def items_of(session: AsyncSession, order_id: int) -> List[OrderItem]:
    rows = await session.execute(
        select(OrderItem)
        .where(OrderItem.order_id == order_id)
        .order_by(OrderItem.id)
        .execution_options(populate_existing=True)
    )
    return list(rows.scalars().all())


async def waiting_count(session: AsyncSession, configuration_id: int) -> int:
    return int(
        await session.scalar(
            select(func.count(OrderItem.id)).where(
                OrderItem.product_configuration_id == configuration_id,
                OrderItem.status == OrderItemStatus.WAITING,
            )
        )
        or 0
    )
