# liveorders/jobs/order_expiry.py
"""
订单过期 Job（外部调度入口）

目标：
  - 只处理 orders(status in ('new','waiting'), expire_order_at <= now)
  - 每张单：状态 expired、删明细、退库存、跑等待队列转正
  - 并发安全 & 幂等由 ExpirySweeper.expire_if_due 实现（行锁 + 终态 NOOP）
  - 每张单单独提交，提交后才发到货通知

用法：
  - cron / k8s CronJob 定期执行：
        python -m liveorders.jobs.order_expiry
  - 也可以由其他调度器直接 await main()。
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from liveorders.core.audit import new_trace
from liveorders.core.clock import utc_now
from liveorders.core.config import get_settings
from liveorders.core.logging import setup_logging
from liveorders.db.engine import create_async_engine_safe
from liveorders.db.session import _resolve_dsn
from liveorders.services.expiry_sweeper import ExpirySweeper
from liveorders.services.notifier import Notifier

logger = logging.getLogger("liveorders.jobs.order_expiry")


async def main(
    batch_size: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> int:
    """
    独立运行入口。

    行为：
      - 连接与应用相同的数据库；
      - 调用 ExpirySweeper.sweep_expired 扫描并关闭到期订单（逐单提交）；
      - 记录处理数量。
    """
    settings = get_settings()
    batch_size = batch_size or settings.EXPIRY_BATCH_SIZE
    trace = new_trace("job:order_expiry")

    engine = create_async_engine_safe(_resolve_dsn(), poolclass=NullPool)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with maker() as session:
            expired = await ExpirySweeper(notifier).sweep_expired(
                session, now=now or utc_now(), batch_size=batch_size
            )
            logger.info(
                "[OrderExpiry] trace=%s expired %s orders (batch_size=%s)",
                trace.trace_id,
                expired,
                batch_size,
            )
            return expired
    finally:
        await engine.dispose()


if __name__ == "__main__":
    import asyncio

    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, json=settings.JSON_LOG)
    asyncio.run(main())
