# liveorders/schemas/orders.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


# -------------------------------
# 明细 / 订单出参
# -------------------------------
class OrderItemOut(BaseModel):
    id: int
    order_id: Optional[int] = None
    user_id: int
    message_id: Optional[str] = None
    live_session_id: Optional[int] = None
    configuration_id: int
    quantity: int
    price: Decimal
    status: Optional[str] = None  # None = 生效行；"waiting" = 等待行
    created_at: Optional[datetime] = None


class OrderOut(BaseModel):
    id: int
    order_number: Optional[str] = None
    user_id: int
    live_session_id: Optional[int] = None
    status: str
    status_waiting: bool
    order_amount: Decimal
    total_amount: Decimal
    refund_amount: Decimal
    expire_order_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: Optional[List[OrderItemOut]] = None


# -------------------------------
# POST /orders/items
# -------------------------------
class PlaceItemIn(BaseModel):
    user_id: int
    live_session_id: Optional[int] = None
    configuration_id: int
    quantity: int = Field(..., gt=0)
    price: Decimal = Field(..., ge=0)
    message_id: Optional[str] = None


class PlaceItemOut(BaseModel):
    status: str  # "RESERVED" / "WAITING"
    order: OrderOut
    item: OrderItemOut
    available: int


# -------------------------------
# 删行 / 减一
# -------------------------------
class ItemChangeOut(BaseModel):
    status: str  # "OK" / "REMOVED"
    item_id: Optional[int] = None
    item: Optional[OrderItemOut] = None
    released: int
    promoted: int
    order: Optional[OrderOut] = None


# -------------------------------
# 状态迁移
# -------------------------------
class ShipIn(BaseModel):
    order_ids: List[int] = Field(..., min_length=1)


class ShipSkipped(BaseModel):
    order_id: int
    reason: str


class ShipOut(BaseModel):
    shipped: List[int]
    skipped: List[ShipSkipped]


class CloseOut(BaseModel):
    status: str  # "CANCELED" / "EXPIRED" / "NOOP"
    order: OrderOut
    released: Dict[int, int] = Field(default_factory=dict)
    promoted: int = 0


class ExpireIn(BaseModel):
    user_id: Optional[int] = None


# -------------------------------
# 只读
# -------------------------------
class OrderTotalOut(BaseModel):
    order_id: int
    order_number: str
    status: str
    order_amount: Decimal
    total_amount: Decimal
    refund_amount: Decimal


class MessageItemStatusOut(BaseModel):
    item_id: int
    item_status: Optional[str] = None
    order_id: Optional[int] = None
    order_number: Optional[str] = None
    order_status: Optional[str] = None
