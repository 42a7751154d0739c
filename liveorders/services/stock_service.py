# liveorders/services/stock_service.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.core.clock import utc_now
from liveorders.models.product_configuration import ProductConfiguration
from liveorders.services.boundary import TxBoundService
from liveorders.services.inventory_ledger import InventoryLedger, positive_qty
from liveorders.services.waiting_queue import WaitingQueue

logger = logging.getLogger("liveorders.stock")


def configuration_to_dict(cfg: ProductConfiguration, *, waiting: int = 0) -> Dict[str, Any]:
    return {
        "id": cfg.id,
        "product_id": cfg.product_id,
        "color": cfg.color,
        "size": cfg.size,
        "quantity": int(cfg.quantity),
        "waiting_credit": int(cfg.waiting_credit or 0),
        "waiting_entries": waiting,
    }


class StockService(TxBoundService):
    """后台库存入口：查询 / 盘点设定余量 / 手工退回。增量都会触发等待队列转正。"""

    async def get_configuration(
        self, session: AsyncSession, *, configuration_id: int
    ) -> Dict[str, Any]:
        async def _inner():
            cfg = await InventoryLedger.load(session, configuration_id, lock=False)
            waiting = await WaitingQueue.pending_count(session, configuration_id=configuration_id)
            return configuration_to_dict(cfg, waiting=waiting), []

        return await self._run(session, "get_configuration", _inner)

    async def restock(
        self,
        session: AsyncSession,
        *,
        configuration_id: int,
        quantity: int,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """把余量直接设为 quantity；比原来多出来的部分按“释放”进等待队列。"""
        now = now or utc_now()

        async def _inner():
            delta = await InventoryLedger.set_quantity(
                session, configuration_id=configuration_id, quantity=quantity
            )
            notices = []
            if delta > 0:
                notices = await WaitingQueue.on_release(
                    session, configuration_id=configuration_id, released_qty=delta, now=now
                )
            cfg = await InventoryLedger.load(session, configuration_id)
            waiting = await WaitingQueue.pending_count(session, configuration_id=configuration_id)
            logger.info(
                "configuration restocked: config=%s delta=%s promoted=%s",
                configuration_id,
                delta,
                len(notices),
            )
            out = configuration_to_dict(cfg, waiting=waiting)
            out.update({"delta": delta, "promoted": len(notices)})
            return out, notices

        return await self._run(session, "restock", _inner)

    async def release(
        self,
        session: AsyncSession,
        *,
        configuration_id: int,
        qty: int,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        qty = positive_qty(qty)
        now = now or utc_now()

        async def _inner():
            remaining, notices = await WaitingQueue.release_and_promote(
                session, configuration_id=configuration_id, qty=qty, now=now
            )
            return {
                "configuration_id": configuration_id,
                "released": qty,
                "quantity": remaining,
                "promoted": len(notices),
            }, notices

        return await self._run(session, "release", _inner)

    async def list_waiting(
        self,
        session: AsyncSession,
        *,
        configuration_id: Optional[int] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Dict[str, Any]:
        async def _inner():
            page = await WaitingQueue.list_entries(
                session, configuration_id=configuration_id, limit=limit, offset=offset
            )
            return page, []

        return await self._run(session, "list_waiting", _inner)
