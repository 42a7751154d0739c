# tests/services/test_expiry_sweeper.py
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.core.clock import as_utc
from liveorders.models import OrderStatus
from liveorders.services.errors import NotFoundError
from liveorders.services.expiry_sweeper import ExpirySweeper
from liveorders.services.order_service import OrderService
from liveorders.services.order_utils import load_order
from tests.services._helpers import PRICE, T0, items_of, qty_of, waiting_count

pytestmark = pytest.mark.asyncio


async def _open_order(session: AsyncSession, seed, notifier, *, user_id=None, now=T0):
    """alice 的 open 单：cfg_big × 3 + cfg_small × 1。"""
    svc = OrderService(notifier)
    uid = user_id or seed.alice
    first = await svc.place_item(
        session, user_id=uid, live_session_id=seed.live,
        configuration_id=seed.cfg_big, quantity=3, price=PRICE, now=now,
    )
    await svc.place_item(
        session, user_id=uid, live_session_id=seed.live,
        configuration_id=seed.cfg_small, quantity=1, price=PRICE, now=now,
    )
    return first["order"]["id"]


async def test_not_due_is_noop(session: AsyncSession, seed, notifier):
    order_id = await _open_order(session, seed, notifier)

    res = await ExpirySweeper(notifier).expire_if_due(
        session, order_id=order_id, now=T0 + timedelta(hours=1)
    )
    assert res["status"] == "NOOP"
    assert len(await items_of(session, order_id)) == 2
    assert await qty_of(session, seed.cfg_big) == 7


async def test_expiry_releases_exact_active_quantities(session: AsyncSession, seed, notifier):
    order_id = await _open_order(session, seed, notifier)
    assert await qty_of(session, seed.cfg_big) == 7
    assert await qty_of(session, seed.cfg_small) == 1

    due = T0 + timedelta(hours=2, minutes=1)
    res = await ExpirySweeper(notifier).expire_if_due(
        session, order_id=order_id, user_id=seed.alice, now=due
    )

    assert res["status"] == "EXPIRED"
    assert res["released"] == {seed.cfg_big: 3, seed.cfg_small: 1}
    assert await qty_of(session, seed.cfg_big) == 10
    assert await qty_of(session, seed.cfg_small) == 2
    assert await items_of(session, order_id) == []

    order = await load_order(session, order_id, lock=False)
    assert order.status == OrderStatus.EXPIRED
    assert order.total_amount == order.order_amount == Decimal("0.00")
    assert as_utc(order.expire_order_at) == due

    again = await ExpirySweeper(notifier).expire_if_due(
        session, order_id=order_id, now=due + timedelta(hours=1)
    )
    assert again["status"] == "NOOP"


async def test_foreign_user_sees_not_found(session: AsyncSession, seed, notifier):
    order_id = await _open_order(session, seed, notifier)
    with pytest.raises(NotFoundError):
        await ExpirySweeper(notifier).expire_if_due(
            session, order_id=order_id, user_id=seed.bob, now=T0 + timedelta(hours=3)
        )


async def test_expiry_promotes_waiting_entries(session: AsyncSession, seed, notifier):
    """alice 占满 cfg_small；bob 排队 1 件；alice 的单过期 → bob 转正，余量 1。"""
    svc = OrderService(notifier)
    held = await svc.place_item(
        session, user_id=seed.alice, live_session_id=seed.live,
        configuration_id=seed.cfg_small, quantity=2, price=PRICE, now=T0,
    )
    queued = await svc.place_item(
        session, user_id=seed.bob, live_session_id=seed.live,
        configuration_id=seed.cfg_small, quantity=1, price=PRICE, now=T0,
    )
    assert queued["status"] == "WAITING"

    res = await ExpirySweeper(notifier).expire_if_due(
        session, order_id=held["order"]["id"], now=T0 + timedelta(hours=3)
    )
    assert res["promoted"] == 1
    assert await qty_of(session, seed.cfg_small) == 1
    assert await waiting_count(session, seed.cfg_small) == 0
    assert [n.user_id for n in notifier.sent] == [seed.bob]


async def test_sweep_expires_only_due_orders(session: AsyncSession, seed, notifier):
    early = await _open_order(session, seed, notifier, user_id=seed.alice, now=T0)
    also_early = await _open_order(session, seed, notifier, user_id=seed.bob, now=T0)
    late = await _open_order(
        session, seed, notifier, user_id=seed.seller, now=T0 + timedelta(hours=5)
    )

    sweeper = ExpirySweeper(notifier)
    expired = await sweeper.sweep_expired(session, now=T0 + timedelta(hours=3), batch_size=1)
    assert expired == 2

    statuses = {
        oid: (await load_order(session, oid, lock=False)).status
        for oid in (early, also_early, late)
    }
    assert statuses == {
        early: OrderStatus.EXPIRED,
        also_early: OrderStatus.EXPIRED,
        late: OrderStatus.NEW,
    }

    # 第二次扫描没有可处理的单
    assert await sweeper.sweep_expired(session, now=T0 + timedelta(hours=3)) == 0


class _TxSpy:
    """记录发通知那一刻扫描用的 session 是否还在事务里。"""

    def __init__(self) -> None:
        self.session = None
        self.in_tx = []
        self.sent = []

    async def send_back_in_stock(self, notice) -> None:
        self.in_tx.append(self.session.in_transaction())
        self.sent.append(notice)


async def test_sweep_notifies_only_after_each_order_commits(async_session_maker, seed, notifier):
    """到货通知不能在持有行锁的事务里发：每张单提交后才通知。"""
    async with async_session_maker() as setup:
        svc = OrderService(notifier)
        held = await svc.place_item(
            setup, user_id=seed.alice, live_session_id=seed.live,
            configuration_id=seed.cfg_small, quantity=2, price=PRICE, now=T0,
        )
        queued = await svc.place_item(
            setup, user_id=seed.bob, live_session_id=seed.live,
            configuration_id=seed.cfg_small, quantity=1, price=PRICE, now=T0,
        )
    assert queued["status"] == "WAITING"

    spy = _TxSpy()
    async with async_session_maker() as job_session:
        spy.session = job_session
        expired = await ExpirySweeper(spy).sweep_expired(
            job_session, now=T0 + timedelta(hours=3), batch_size=10
        )
        assert not job_session.in_transaction()

    assert expired == 1
    assert spy.in_tx == [False]
    assert [n.user_id for n in spy.sent] == [seed.bob]

    async with async_session_maker() as check:
        order = await load_order(check, held["order"]["id"], lock=False)
        assert order.status == OrderStatus.EXPIRED
        assert await qty_of(check, seed.cfg_small) == 1
