# liveorders/services/inventory_ledger.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from liveorders.core.config import get_settings
from liveorders.metrics import RELEASED_UNITS, RESERVATIONS
from liveorders.models.product_configuration import ProductConfiguration
from liveorders.services.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger("liveorders.ledger")


@dataclass(frozen=True)
class ReserveResult:
    success: bool
    configuration_id: int
    requested: int
    available: int  # 成功：扣减后的余量；失败：当前余量（未改动）


def positive_qty(qty, *, field: str = "qty") -> int:
    try:
        value = int(qty)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", context={field: qty})
    if value <= 0:
        raise ValidationError(f"{field} must be > 0", context={field: value})
    return value


class InventoryLedger:
    """
    SKU 组合的可用库存台账。

    - reserve：行锁（FOR UPDATE）读余量 → 不够返回 insufficient（不动库存）
               → 够则 UPDATE ... WHERE quantity >= qty 条件扣减；
                 影响 0 行视为并发冲突，重查重试（首次 + RESERVE_CONFLICT_RETRIES 次）
    - release：加回数量，永远成功（可叠加）
    - set_quantity：后台直接设定余量（补货 / 盘点），返回差值

    不变量：quantity 永不为负。本类不开事务，调用方负责事务边界；
    释放后的等待队列转正由 WaitingQueue 负责（同一事务内）。
    """

    @staticmethod
    async def load(
        session: AsyncSession, configuration_id: int, *, lock: bool = True
    ) -> ProductConfiguration:
        stmt = (
            select(ProductConfiguration)
            .where(ProductConfiguration.id == configuration_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update()
        cfg = (await session.execute(stmt)).scalar_one_or_none()
        if cfg is None:
            raise NotFoundError(
                f"product configuration not found: id={configuration_id}",
                context={"configuration_id": configuration_id},
            )
        return cfg

    @staticmethod
    async def get_quantity(session: AsyncSession, *, configuration_id: int) -> int:
        cfg = await InventoryLedger.load(session, configuration_id, lock=False)
        return int(cfg.quantity)

    @staticmethod
    async def reserve(
        session: AsyncSession,
        *,
        configuration_id: int,
        qty: int,
        retries: Optional[int] = None,
    ) -> ReserveResult:
        qty = positive_qty(qty)
        if retries is None:
            retries = get_settings().RESERVE_CONFLICT_RETRIES
        # 首次 + 重试次数
        attempts = max(int(retries), 0) + 1

        for attempt in range(1, attempts + 1):
            cfg = await InventoryLedger.load(session, configuration_id)
            available = int(cfg.quantity)

            if available < qty:
                RESERVATIONS.labels(result="insufficient").inc()
                logger.info(
                    "reserve insufficient: config=%s need=%s available=%s",
                    configuration_id,
                    qty,
                    available,
                )
                return ReserveResult(False, configuration_id, qty, available)

            # 条件扣减：余量仍够才扣，落空说明被并发写抢走
            res = await session.execute(
                update(ProductConfiguration)
                .where(
                    ProductConfiguration.id == configuration_id,
                    ProductConfiguration.quantity >= qty,
                )
                .values(quantity=ProductConfiguration.quantity - qty)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount == 1:
                RESERVATIONS.labels(result="reserved").inc()
                remaining = await session.scalar(
                    select(ProductConfiguration.quantity).where(
                        ProductConfiguration.id == configuration_id
                    )
                )
                return ReserveResult(True, configuration_id, qty, int(remaining))

            logger.warning(
                "reserve conflict: config=%s attempt=%s/%s", configuration_id, attempt, attempts
            )

        RESERVATIONS.labels(result="conflict").inc()
        raise ConflictError(
            f"concurrent modification on configuration={configuration_id}",
            context={"configuration_id": configuration_id, "attempts": attempts},
        )

    @staticmethod
    async def release(session: AsyncSession, *, configuration_id: int, qty: int) -> int:
        qty = positive_qty(qty)
        cfg = await InventoryLedger.load(session, configuration_id)
        cfg.quantity = int(cfg.quantity) + qty
        await session.flush()
        RELEASED_UNITS.inc(qty)
        return int(cfg.quantity)

    @staticmethod
    async def set_quantity(session: AsyncSession, *, configuration_id: int, quantity: int) -> int:
        """直接设定余量，返回 新值 - 旧值。"""
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            raise ValidationError("quantity must be an integer", context={"quantity": quantity})
        if quantity < 0:
            raise ValidationError("quantity must be >= 0", context={"quantity": quantity})

        cfg = await InventoryLedger.load(session, configuration_id)
        delta = quantity - int(cfg.quantity)
        cfg.quantity = quantity
        await session.flush()
        return delta
