# tests/jobs/test_order_expiry_job.py
from __future__ import annotations

from datetime import timedelta

import pytest

from liveorders.jobs import order_expiry
from liveorders.models import OrderStatus
from liveorders.services.order_service import OrderService
from liveorders.services.order_utils import load_order
from tests.services._helpers import PRICE, T0, qty_of

pytestmark = pytest.mark.asyncio


class _CommittedView:
    """发通知时用另一条连接看订单：只有已提交的过期才看得到。"""

    def __init__(self, maker, order_id: int) -> None:
        self.maker = maker
        self.order_id = order_id
        self.seen = []
        self.sent = []

    async def send_back_in_stock(self, notice) -> None:
        async with self.maker() as s:
            order = await load_order(s, self.order_id, lock=False)
            self.seen.append(order.status)
        self.sent.append(notice)


async def test_job_expires_due_orders_and_commits(
    async_engine, async_session_maker, seed, notifier, monkeypatch
):
    monkeypatch.setattr(
        order_expiry, "_resolve_dsn", lambda: async_engine.url.render_as_string(hide_password=False)
    )

    async with async_session_maker() as setup:
        svc = OrderService(notifier)
        held = await svc.place_item(
            setup, user_id=seed.alice, live_session_id=seed.live,
            configuration_id=seed.cfg_small, quantity=2, price=PRICE, now=T0,
        )
        await svc.place_item(
            setup, user_id=seed.bob, live_session_id=seed.live,
            configuration_id=seed.cfg_small, quantity=1, price=PRICE, now=T0,
        )
        fresh = await svc.place_item(
            setup, user_id=seed.seller, live_session_id=seed.live,
            configuration_id=seed.cfg_big, quantity=1, price=PRICE, now=T0 + timedelta(hours=2),
        )

    view = _CommittedView(async_session_maker, held["order"]["id"])
    expired = await order_expiry.main(batch_size=1, now=T0 + timedelta(hours=3), notifier=view)

    assert expired == 1
    assert view.seen == [OrderStatus.EXPIRED]
    assert [n.user_id for n in view.sent] == [seed.bob]

    async with async_session_maker() as check:
        assert (await load_order(check, fresh["order"]["id"], lock=False)).status == OrderStatus.NEW
        assert await qty_of(check, seed.cfg_small) == 1

    # 再跑一次没有到期单
    assert await order_expiry.main(now=T0 + timedelta(hours=3), notifier=view) == 0
