# tests/conftest.py
from __future__ import annotations

import os
from types import SimpleNamespace
from typing import AsyncGenerator, List

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from liveorders.api.deps import get_notifier, get_session
from liveorders.db.base import Base, init_models
from liveorders.db.engine import create_async_engine_safe
from liveorders.main import app
from liveorders.models import (
    LiveSession,
    ProductConfiguration,
    SellerSettings,
    User,
)
from liveorders.services.notifier import BackInStockNotice

# ==========================
# 数据库 DSN：显式配置优先，否则每个用例一个临时 sqlite 文件
# ==========================
TEST_DATABASE_URL = os.getenv("LIVEORDERS_TEST_DATABASE_URL")


class RecordingNotifier:
    """记录型到货通知：测试里断言发了哪些通知。"""

    def __init__(self) -> None:
        self.sent: List[BackInStockNotice] = []

    async def send_back_in_stock(self, notice: BackInStockNotice) -> None:
        self.sent.append(notice)


# =========================================
# 每用例独立 Engine（NullPool，避免跨 loop）
# =========================================
@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'liveorders.db'}"
    engine = create_async_engine_safe(url, poolclass=NullPool)

    init_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def async_session_maker(async_engine: AsyncEngine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


# =========================================
# 最小种子数据（每测试一次）
# =========================================
@pytest_asyncio.fixture(scope="function")
async def seed(async_session_maker) -> SimpleNamespace:
    """
    卖家 + 直播场次（store 10，订单计时 2 小时）
    买家 alice / bob，占位身份 fake
    SKU 组合：
      cfg_small  qty=2   （文档里的示例：2 件，先要 3 件）
      cfg_big    qty=10
      cfg_empty  qty=0
    """
    async with async_session_maker() as sess:
        async with sess.begin():
            seller = User(first_name="Seller")
            alice = User(first_name="Alice")
            bob = User(first_name="Bob")
            fake = User(first_name=None, is_fake=True)
            sess.add_all([seller, alice, bob, fake])
            await sess.flush()

            live = LiveSession(seller_id=seller.id, store_id=10, store_name="Store-10")
            sess.add(live)
            sess.add(SellerSettings(seller_id=seller.id, order_timer={"hours": 2}))

            cfg_small = ProductConfiguration(product_id=100, color="red", size="M", quantity=2)
            cfg_big = ProductConfiguration(product_id=100, color="blue", size="L", quantity=10)
            cfg_empty = ProductConfiguration(product_id=200, color="black", size="S", quantity=0)
            sess.add_all([cfg_small, cfg_big, cfg_empty])
            await sess.flush()

            ids = SimpleNamespace(
                seller=seller.id,
                alice=alice.id,
                bob=bob.id,
                fake=fake.id,
                live=live.id,
                store=10,
                cfg_small=cfg_small.id,
                cfg_big=cfg_big.id,
                cfg_empty=cfg_empty.id,
            )
    return ids


@pytest_asyncio.fixture(scope="function")
async def session(async_session_maker, seed) -> AsyncGenerator[AsyncSession, None]:
    """
    标准 Session（自动 commit / rollback）
    """
    async with async_session_maker() as sess:
        try:
            yield sess
            if sess.in_transaction():
                await sess.commit()
        except Exception:
            if sess.in_transaction():
                await sess.rollback()
            raise


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# =========================================
# FastAPI / httpx AsyncClient
# =========================================
@pytest_asyncio.fixture(scope="function")
async def client(async_session_maker, seed, notifier) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with async_session_maker() as sess:
            yield sess

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(
            transport=transport,
            base_url="http://testserver",
            timeout=httpx.Timeout(10.0, connect=5.0, read=10.0, write=5.0, pool=5.0),
        ) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
