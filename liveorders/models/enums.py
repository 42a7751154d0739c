# liveorders/models/enums.py
from __future__ import annotations

import enum


class OrderStatus(str, enum.Enum):
    NEW = "new"
    WAITING = "waiting"
    PAYED = "payed"
    SHIPPED = "shipped"
    CANCELED = "canceled"
    EXPIRED = "expired"


# 过期扫描不再处理的终态
TERMINAL_STATUSES = frozenset(
    {OrderStatus.PAYED, OrderStatus.SHIPPED, OrderStatus.EXPIRED, OrderStatus.CANCELED}
)


class OrderItemStatus(str, enum.Enum):
    # 生效行在库里是 NULL，这里只有 waiting 一个值
    WAITING = "waiting"


def enum_values(e: type[enum.Enum]) -> list[str]:
    """SAEnum 的 values_callable：库里存 value 而不是 name。"""
    return [m.value for m in e]
