# liveorders/schemas/inventory.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from liveorders.schemas.orders import OrderItemOut


class ConfigurationOut(BaseModel):
    id: int
    product_id: int
    color: Optional[str] = None
    size: Optional[str] = None
    quantity: int
    waiting_credit: int
    waiting_entries: int


class SetQuantityIn(BaseModel):
    quantity: int = Field(..., ge=0)


class SetQuantityOut(ConfigurationOut):
    delta: int
    promoted: int


class ReleaseIn(BaseModel):
    qty: int = Field(..., gt=0)


class ReleaseOut(BaseModel):
    configuration_id: int
    released: int
    quantity: int
    promoted: int


class WaitingPageOut(BaseModel):
    total: int
    items: List[OrderItemOut]
