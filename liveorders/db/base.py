# liveorders/db/base.py
from __future__ import annotations

import importlib
import logging
from typing import List

from sqlalchemy.orm import DeclarativeBase, configure_mappers

log = logging.getLogger("liveorders.models")


class Base(DeclarativeBase):
    """全局唯一 ORM Base"""

    pass


_INITIALIZED: bool = False  # 防重复初始化

# 显式导入顺序：先被引用方，再引用方（保证字符串关系目标类已注册）
MODEL_MODULES = [
    "liveorders.models.user",
    "liveorders.models.live_session",
    "liveorders.models.seller_settings",
    "liveorders.models.product_configuration",
    "liveorders.models.order",
    "liveorders.models.order_item",
    "liveorders.models.order_status",
    "liveorders.models.order_number_sequence",
]


def init_models(*, force: bool = False) -> None:
    """
    集中导入模型 + 固化关系映射（Alembic / create_all 之前调用）。
    """
    global _INITIALIZED
    if _INITIALIZED and not force:
        return

    loaded: List[str] = []
    for mod in MODEL_MODULES:
        importlib.import_module(mod)
        loaded.append(mod)

    configure_mappers()
    _INITIALIZED = True
    log.info("ORM models initialized & mappers configured (loaded %d modules)", len(loaded))
