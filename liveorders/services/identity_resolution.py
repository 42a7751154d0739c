# liveorders/services/identity_resolution.py
from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.core.clock import utc_now
from liveorders.metrics import IDENTITY_MERGES
from liveorders.models.enums import OrderStatus
from liveorders.models.live_session import LiveSession
from liveorders.models.order import Order
from liveorders.models.order_item import OrderItem
from liveorders.models.user import User
from liveorders.services.boundary import TxBoundService
from liveorders.services.errors import InvalidTransition, NotFoundError, ValidationError
from liveorders.services.order_numbers import next_order_number, waiting_order_number
from liveorders.services.order_timer import compute_expire_at
from liveorders.services.order_utils import (
    create_order,
    delete_order,
    find_open_order,
    load_order,
    order_items,
    recompute_totals,
)

logger = logging.getLogger("liveorders.identity")


async def merge_duplicates(session: AsyncSession, order: Order) -> int:
    """
    同一张单里同一 SKU 组合只留一行生效明细：数量并到最早那行，其余删除。
    返回被并掉的行数。
    """
    keep: "OrderedDict[int, OrderItem]" = OrderedDict()
    merged = 0
    for item in await order_items(session, order.id, active_only=True):
        first = keep.get(item.product_configuration_id)
        if first is None:
            keep[item.product_configuration_id] = item
            continue
        first.quantity = int(first.quantity) + int(item.quantity)
        await session.delete(item)
        merged += 1
    if merged:
        await session.flush()
    return merged


async def _remaining_items(session: AsyncSession, order_id: int) -> int:
    return int(
        await session.scalar(
            select(func.count(OrderItem.id)).where(OrderItem.order_id == order_id)
        )
        or 0
    )


async def _still_referenced(session: AsyncSession, user_id: int) -> bool:
    orders = await session.scalar(select(func.count(Order.id)).where(Order.user_id == user_id))
    items = await session.scalar(
        select(func.count(OrderItem.id)).where(OrderItem.user_id == user_id)
    )
    return bool(orders) or bool(items)


class IdentityResolver(TxBoundService):
    """
    评论身份归并：直播评论下单时用的是占位身份（is_fake），
    买家在 messenger 里点链接后把这条评论产生的明细归到真实买家名下。

    - 生效行：买家在同场次已有 open 单 → 移过去并合并重复 SKU（mode=merge）；
              否则占位单直接过户给买家，补单号 + 过期时间（mode=assign）
    - 等待行：各自一张 waiting 单，单号 <基础单号>-WO-<明细 id>
    - 占位单搬空即删；占位用户不再被引用即删
    """

    async def resolve(
        self,
        session: AsyncSession,
        *,
        comment_id: str,
        user_id: int,
        store_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = now or utc_now()

        async def _inner():
            items = list(
                (
                    await session.execute(
                        select(OrderItem)
                        .where(OrderItem.message_id == comment_id)
                        .order_by(OrderItem.created_at, OrderItem.id)
                        .with_for_update()
                    )
                ).scalars().all()
            )
            if not items:
                raise NotFoundError(
                    f"no order items for comment={comment_id}", context={"comment_id": comment_id}
                )

            buyer = await session.get(User, user_id)
            if buyer is None:
                raise NotFoundError(f"user not found: id={user_id}", context={"user_id": user_id})
            if buyer.is_fake:
                raise ValidationError(
                    "cannot resolve a comment onto a placeholder user", context={"user_id": user_id}
                )

            live_session_id = items[0].live_session_id
            live = await session.get(LiveSession, live_session_id) if live_session_id else None
            if store_id is not None and (live is None or live.store_id != store_id):
                raise ValidationError(
                    "store does not match the comment's live session",
                    context={
                        "comment_id": comment_id,
                        "store_id": store_id,
                        "live_session_store_id": live.store_id if live is not None else None,
                    },
                )

            previous_owners: Set[int] = {i.user_id for i in items if i.user_id != user_id}
            active = [i for i in items if i.status is None]
            waiting = [i for i in items if i.is_waiting]

            mode = "waiting_only"
            target: Optional[Order] = None
            if active:
                mode, target = await self._resolve_active(
                    session, active, user_id=user_id, live_session_id=live_session_id, now=now
                )

            base_number = target.order_number if target is not None else None
            waiting_order_ids = await self._split_waiting(
                session, waiting, user_id=user_id, base_number=base_number, now=now
            )

            removed_users = await self._drop_placeholders(session, previous_owners)

            IDENTITY_MERGES.labels(mode=mode).inc()
            logger.info(
                "comment resolved: comment=%s user=%s mode=%s order=%s waiting=%s dropped_users=%s",
                comment_id,
                user_id,
                mode,
                target.id if target is not None else None,
                waiting_order_ids,
                removed_users,
            )
            return {
                "status": "OK",
                "mode": mode,
                "order_id": target.id if target is not None else None,
                "order_number": target.order_number if target is not None else None,
                "store_name": live.store_name if live is not None else None,
                "waiting_order_ids": waiting_order_ids,
            }, []

        return await self._run(session, "resolve_identity", _inner)

    async def _resolve_active(
        self,
        session: AsyncSession,
        active: List[OrderItem],
        *,
        user_id: int,
        live_session_id: Optional[int],
        now: datetime,
    ):
        placeholder_ids = sorted({i.order_id for i in active if i.order_id is not None})
        placeholders = [await load_order(session, oid) for oid in placeholder_ids]
        for p in placeholders:
            if p.status != OrderStatus.NEW:
                raise InvalidTransition(
                    f"order {p.id} is {p.status.value}; cannot be resolved",
                    context={"order_id": p.id, "status": p.status.value},
                )
        placeholder = placeholders[0] if placeholders else None

        # 已经过户给买家的单（webhook 重放）就是买家的 open 单，不能排除
        exclude = None
        if placeholder is not None and placeholder.user_id != user_id:
            exclude = placeholder.id
        target = await find_open_order(
            session,
            user_id=user_id,
            live_session_id=live_session_id,
            exclude_order_id=exclude,
        )

        if target is not None:
            mode = "merge"
        else:
            mode = "assign"
            comment_item_ids = {i.id for i in active}
            foreign = False
            if placeholder is not None:
                others = await order_items(session, placeholder.id)
                foreign = any(o.id not in comment_item_ids for o in others)

            if placeholder is None or foreign:
                # 占位单里还有别的评论的行：不能整单过户，给买家开新单
                target = await create_order(
                    session,
                    user_id=user_id,
                    live_session_id=live_session_id,
                    status=OrderStatus.NEW,
                    order_number=await next_order_number(session, today=now.date()),
                    expire_order_at=await compute_expire_at(
                        session, live_session_id=live_session_id, now=now
                    ),
                )
            else:
                target = placeholder
                target.user_id = user_id
                if not target.order_number:
                    target.order_number = await next_order_number(session, today=now.date())
                target.expire_order_at = await compute_expire_at(
                    session, live_session_id=target.live_session_id, now=now
                )

        for item in active:
            item.order_id = target.id
            item.user_id = user_id
        await session.flush()

        merged = await merge_duplicates(session, target)
        target.sync_at = now
        await recompute_totals(session, target)
        if merged:
            logger.info("duplicate lines merged: order=%s merged=%s", target.id, merged)

        await self._cleanup_orders(session, (p for p in placeholders if p.id != target.id))
        return mode, target

    async def _split_waiting(
        self,
        session: AsyncSession,
        waiting: List[OrderItem],
        *,
        user_id: int,
        base_number: Optional[str],
        now: datetime,
    ) -> List[int]:
        out: List[int] = []
        touched: Dict[int, Order] = {}
        for item in waiting:
            order = None
            if item.order_id is not None:
                order = await load_order(session, item.order_id, missing_ok=True)

            own = (
                order is not None
                and order.status == OrderStatus.WAITING
                and await _remaining_items(session, order.id) == 1
            )
            if own:
                order.user_id = user_id
                order.status_waiting = True
                if not order.order_number:
                    order.order_number = waiting_order_number(base_number, item.id)
                order.sync_at = now
            else:
                if order is not None:
                    touched[order.id] = order
                order = await create_order(
                    session,
                    user_id=user_id,
                    live_session_id=item.live_session_id,
                    status=OrderStatus.WAITING,
                    order_number=waiting_order_number(base_number, item.id),
                )
                item.order_id = order.id

            item.user_id = user_id
            await session.flush()
            await recompute_totals(session, order)
            out.append(order.id)

        await self._cleanup_orders(session, touched.values())
        return out

    async def _cleanup_orders(self, session: AsyncSession, orders: Iterable[Order]) -> None:
        """搬走明细后的旧单：空了就删，没空就重算金额。"""
        for order in orders:
            if await _remaining_items(session, order.id) == 0:
                logger.info("placeholder order emptied and deleted: order=%s", order.id)
                await delete_order(session, order)
            else:
                await recompute_totals(session, order)

    async def _drop_placeholders(self, session: AsyncSession, user_ids: Set[int]) -> List[int]:
        removed: List[int] = []
        for uid in sorted(user_ids):
            user = await session.get(User, uid)
            if user is None or not user.is_fake:
                continue
            if await _still_referenced(session, uid):
                continue
            await session.delete(user)
            removed.append(uid)
        if removed:
            await session.flush()
        return removed
