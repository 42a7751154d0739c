# liveorders/services/order_numbers.py
from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.core.clock import utc_now
from liveorders.models.order_number_sequence import OrderNumberSequence
from liveorders.services.errors import ConflictError

WAITING_MARK = "-WO-"


def format_day(d: date) -> str:
    return d.strftime("%Y%m%d")


async def next_order_number(session: AsyncSession, *, today: Optional[date] = None) -> str:
    """
    生成 YYYYMMDD-N：N 为当天序号，计数器行加锁递增。
    当天第一张单并发插入计数器撞主键 → ConflictError（由上层重试整个请求）。
    """
    day = format_day(today or utc_now().date())

    seq = (
        await session.execute(
            select(OrderNumberSequence)
            .where(OrderNumberSequence.day == day)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()

    if seq is None:
        seq = OrderNumberSequence(day=day, last_value=0)
        session.add(seq)

    seq.last_value = int(seq.last_value or 0) + 1
    try:
        await session.flush()
    except IntegrityError as e:
        raise ConflictError(
            f"order number sequence race on day={day}", context={"day": day}
        ) from e
    return f"{day}-{seq.last_value}"


def waiting_order_number(base: Optional[str], item_id: int) -> str:
    """拆出来的等待单：<原单号>-WO-<明细 id>；原单还没号时只用明细 id。"""
    if base:
        return f"{base}{WAITING_MARK}{item_id}"
    return f"WO-{item_id}"
