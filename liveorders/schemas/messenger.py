# liveorders/schemas/messenger.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel


class ResolveIn(BaseModel):
    """messenger 回调：买家点了评论里的链接。"""

    comment_id: str
    user_id: int
    store_id: Optional[int] = None


class ResolveOut(BaseModel):
    status: str  # "OK"
    mode: str  # "merge" / "assign" / "waiting_only"
    order_id: Optional[int] = None
    order_number: Optional[str] = None
    store_name: Optional[str] = None
    waiting_order_ids: List[int]
