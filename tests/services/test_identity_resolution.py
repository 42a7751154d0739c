# tests/services/test_identity_resolution.py
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.models import Order, OrderStatus, User
from liveorders.services.errors import NotFoundError, ValidationError
from liveorders.services.identity_resolution import IdentityResolver, merge_duplicates
from liveorders.services.order_service import OrderService
from liveorders.services.order_utils import load_order
from tests.services._helpers import PRICE, T0, items_of

pytestmark = pytest.mark.asyncio


async def _comment(svc: OrderService, session: AsyncSession, seed, comment_id: str, **kw):
    """占位身份在直播间留言下单。"""
    params = dict(
        user_id=seed.fake,
        live_session_id=seed.live,
        configuration_id=seed.cfg_big,
        quantity=1,
        price=PRICE,
        message_id=comment_id,
        now=T0,
    )
    params.update(kw)
    return await svc.place_item(session, **params)


async def _user_exists(session: AsyncSession, user_id: int) -> bool:
    return (await session.execute(select(User.id).where(User.id == user_id))).first() is not None


async def test_merge_into_buyer_open_order_without_duplicates(
    session: AsyncSession, seed, notifier
):
    """
    alice 已有 open 单（cfg_big × 2）；占位身份的评论也是 cfg_big × 1。
    归并后：目标单只剩一行 cfg_big × 3，占位单删除，占位用户删除。
    """
    orders = OrderService(notifier)
    own = await orders.place_item(
        session, user_id=seed.alice, live_session_id=seed.live,
        configuration_id=seed.cfg_big, quantity=2, price=PRICE, now=T0,
    )
    placeholder = await _comment(orders, session, seed, "c-merge")
    assert placeholder["order"]["id"] != own["order"]["id"]

    res = await IdentityResolver(notifier).resolve(
        session, comment_id="c-merge", user_id=seed.alice, store_id=seed.store, now=T0
    )

    assert res["mode"] == "merge"
    assert res["order_id"] == own["order"]["id"]
    assert res["order_number"] == own["order"]["order_number"]
    assert res["store_name"] == "Store-10"
    assert res["waiting_order_ids"] == []

    items = await items_of(session, own["order"]["id"])
    assert [(i.product_configuration_id, i.quantity) for i in items] == [(seed.cfg_big, 3)]

    target = await load_order(session, own["order"]["id"], lock=False)
    assert target.total_amount == Decimal("31.50")

    assert await load_order(session, placeholder["order"]["id"], lock=False, missing_ok=True) is None
    assert not await _user_exists(session, seed.fake)


async def test_assign_placeholder_order_when_buyer_has_none(session: AsyncSession, seed, notifier):
    orders = OrderService(notifier)
    placed = await _comment(orders, session, seed, "c-assign", quantity=2)

    later = T0 + timedelta(minutes=30)
    res = await IdentityResolver(notifier).resolve(
        session, comment_id="c-assign", user_id=seed.bob, now=later
    )

    assert res["mode"] == "assign"
    assert res["order_id"] == placed["order"]["id"]
    order = await load_order(session, placed["order"]["id"], lock=False)
    assert order.user_id == seed.bob
    assert order.order_number == placed["order"]["order_number"]
    assert order.status == OrderStatus.NEW
    # 过期时间从归并时刻重新起算
    assert order.expire_order_at is not None
    assert res["order_number"] == order.order_number
    items = await items_of(session, order.id)
    assert {i.user_id for i in items} == {seed.bob}
    assert order.total_amount == Decimal("21.00")
    assert not await _user_exists(session, seed.fake)


async def test_waiting_item_gets_its_own_order(session: AsyncSession, seed, notifier):
    orders = OrderService(notifier)
    waiting = await _comment(orders, session, seed, "c-wait", configuration_id=seed.cfg_empty)
    assert waiting["status"] == "WAITING"

    res = await IdentityResolver(notifier).resolve(
        session, comment_id="c-wait", user_id=seed.bob, now=T0
    )

    assert res["mode"] == "waiting_only"
    assert res["order_id"] is None
    assert res["waiting_order_ids"] == [waiting["order"]["id"]]

    order = await load_order(session, waiting["order"]["id"], lock=False)
    assert order.user_id == seed.bob
    assert order.status == OrderStatus.WAITING
    assert order.status_waiting is True
    assert order.order_number == f"WO-{waiting['item']['id']}"
    assert not await _user_exists(session, seed.fake)


async def test_placeholder_user_kept_while_other_comments_reference_it(
    session: AsyncSession, seed, notifier
):
    """占位身份还有别的评论挂着：只搬走本评论的行，占位用户保留。"""
    orders = OrderService(notifier)
    first = await _comment(orders, session, seed, "c-a")
    second = await _comment(orders, session, seed, "c-b", configuration_id=seed.cfg_small)
    assert first["order"]["id"] == second["order"]["id"]

    res = await IdentityResolver(notifier).resolve(
        session, comment_id="c-a", user_id=seed.bob, now=T0
    )
    assert res["mode"] == "assign"
    assert res["order_id"] != first["order"]["id"]

    left = await items_of(session, first["order"]["id"])
    assert [i.message_id for i in left] == ["c-b"]
    placeholder = await load_order(session, first["order"]["id"], lock=False)
    assert placeholder.total_amount == Decimal("10.50")
    assert await _user_exists(session, seed.fake)


async def test_repeated_resolve_keeps_single_open_order(session: AsyncSession, seed, notifier):
    """同一条评论的 webhook 重放：不拆买家的购物车，仍落在同一张 open 单。"""
    orders = OrderService(notifier)
    placed = await _comment(orders, session, seed, "c-1")
    resolver = IdentityResolver(notifier)

    first = await resolver.resolve(session, comment_id="c-1", user_id=seed.alice, now=T0)
    assert first["mode"] == "assign"
    assert first["order_id"] == placed["order"]["id"]

    # 买家过户后又下了一单，落在同一张 open 单里
    own = await orders.place_item(
        session, user_id=seed.alice, live_session_id=seed.live,
        configuration_id=seed.cfg_small, quantity=1, price=PRICE,
        message_id="c-2", now=T0,
    )
    assert own["order"]["id"] == first["order_id"]

    again = await resolver.resolve(session, comment_id="c-1", user_id=seed.alice, now=T0)
    assert again["order_id"] == first["order_id"]
    assert again["order_number"] == first["order_number"]

    open_orders = (
        await session.execute(
            select(Order.id).where(
                Order.user_id == seed.alice, Order.status == OrderStatus.NEW
            )
        )
    ).scalars().all()
    assert list(open_orders) == [first["order_id"]]

    items = await items_of(session, first["order_id"])
    assert sorted(i.message_id for i in items) == ["c-1", "c-2"]
    target = await load_order(session, first["order_id"], lock=False)
    assert target.total_amount == Decimal("21.00")


async def test_merge_duplicates_keeps_oldest_row(session: AsyncSession, seed, notifier):
    orders = OrderService(notifier)
    a = await orders.place_item(
        session, user_id=seed.alice, live_session_id=seed.live,
        configuration_id=seed.cfg_big, quantity=1, price=PRICE, now=T0,
    )
    await orders.place_item(
        session, user_id=seed.alice, live_session_id=seed.live,
        configuration_id=seed.cfg_big, quantity=2, price=PRICE, now=T0 + timedelta(seconds=1),
    )
    order = await load_order(session, a["order"]["id"])
    merged = await merge_duplicates(session, order)

    assert merged == 1
    items = await items_of(session, order.id)
    assert [(i.id, i.quantity) for i in items] == [(a["item"]["id"], 3)]


async def test_rejects_bad_requests(session: AsyncSession, seed, notifier):
    orders = OrderService(notifier)
    await _comment(orders, session, seed, "c-bad")
    resolver = IdentityResolver(notifier)

    with pytest.raises(NotFoundError):
        await resolver.resolve(session, comment_id="missing", user_id=seed.bob)
    with pytest.raises(ValidationError):
        await resolver.resolve(session, comment_id="c-bad", user_id=seed.bob, store_id=999)
    with pytest.raises(ValidationError):
        await resolver.resolve(session, comment_id="c-bad", user_id=seed.fake)

    # 失败的归并不动数据
    owners = (await session.execute(select(Order.user_id))).scalars().all()
    assert owners == [seed.fake]
