# liveorders/services/order_timer.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.core.clock import utc_now
from liveorders.core.config import get_settings
from liveorders.models.live_session import LiveSession
from liveorders.models.seller_settings import SellerSettings
from liveorders.services.errors import ValidationError

TIMER_UNITS = ("hours", "days", "minutes")


def timer_delta(order_timer: Optional[Mapping[str, Any]], *, default_hours: int) -> timedelta:
    """
    卖家 order_timer → 时长。

    - 未配置（None / 空 / 全为 0）：用 default_hours
    - 恰好一个单位：{"hours": 2} / {"days": 1} / {"minutes": 30}
    - 多个单位同时配置、值非正整数：ValidationError
    """
    if not order_timer:
        return timedelta(hours=default_hours)

    configured = {u: order_timer.get(u) for u in TIMER_UNITS if order_timer.get(u)}
    if not configured:
        return timedelta(hours=default_hours)
    if len(configured) > 1:
        raise ValidationError(
            "order_timer must configure exactly one of hours/days/minutes",
            context={"order_timer": dict(order_timer)},
        )

    unit, raw = next(iter(configured.items()))
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(
            f"order_timer.{unit} must be an integer", context={"order_timer": dict(order_timer)}
        )
    if value <= 0:
        raise ValidationError(
            f"order_timer.{unit} must be > 0", context={"order_timer": dict(order_timer)}
        )
    return timedelta(**{unit: value})


async def compute_expire_at(
    session: AsyncSession,
    *,
    live_session_id: Optional[int],
    now: Optional[datetime] = None,
) -> datetime:
    """按直播场次所属卖家的 order_timer 计算 expire_order_at。"""
    now = now or utc_now()
    default_hours = get_settings().DEFAULT_ORDER_TIMER_HOURS

    order_timer = None
    if live_session_id is not None:
        order_timer = (
            await session.execute(
                select(SellerSettings.order_timer)
                .join(LiveSession, LiveSession.seller_id == SellerSettings.seller_id)
                .where(LiveSession.id == live_session_id)
            )
        ).scalar_one_or_none()

    return now + timer_delta(order_timer, default_hours=default_hours)
