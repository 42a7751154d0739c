# liveorders/services/notifier.py
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Iterable, Optional, Protocol

import httpx

from liveorders.core.config import get_settings
from liveorders.metrics import NOTIFY_FAILURES

logger = logging.getLogger("liveorders.notify")


@dataclass(frozen=True)
class BackInStockNotice:
    """等待行转正后要发给买家的“到货了”消息。"""

    item_id: int
    order_id: int
    order_number: Optional[str]
    user_id: int
    message_id: Optional[str]
    configuration_id: int
    quantity: int


class Notifier(Protocol):
    async def send_back_in_stock(self, notice: BackInStockNotice) -> None: ...


class LogNotifier:
    """未配置 webhook 时的兜底：只写日志。"""

    async def send_back_in_stock(self, notice: BackInStockNotice) -> None:
        logger.info(
            "back-in-stock: user=%s order=%s item=%s config=%s qty=%s",
            notice.user_id,
            notice.order_number,
            notice.item_id,
            notice.configuration_id,
            notice.quantity,
        )


class WebhookNotifier:
    """POST JSON 到外部 messenger 发送器。"""

    def __init__(
        self, url: str, *, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def send_back_in_stock(self, notice: BackInStockNotice) -> None:
        payload = {"type": "back_in_stock", **asdict(notice)}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            resp = await client.post(self.url, json=payload)
            resp.raise_for_status()


def get_notifier() -> Notifier:
    settings = get_settings()
    if settings.NOTIFY_WEBHOOK_URL:
        return WebhookNotifier(settings.NOTIFY_WEBHOOK_URL, timeout=settings.NOTIFY_TIMEOUT_SECONDS)
    return LogNotifier()


async def dispatch_notices(notifier: Notifier, notices: Iterable[BackInStockNotice]) -> int:
    """
    事务提交之后再调用。尽力而为：单条失败只记日志 + 计数，不向上抛。
    返回成功条数。
    """
    sent = 0
    for notice in notices:
        try:
            await notifier.send_back_in_stock(notice)
            sent += 1
        except Exception:
            NOTIFY_FAILURES.inc()
            logger.exception(
                "back-in-stock notify failed: item=%s user=%s", notice.item_id, notice.user_id
            )
    return sent
