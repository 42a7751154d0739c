# liveorders/models/__init__.py
"""
统一导出 ORM 模型。
"""

from liveorders.models.enums import OrderItemStatus, OrderStatus
from liveorders.models.live_session import LiveSession
from liveorders.models.order import Order
from liveorders.models.order_item import OrderItem
from liveorders.models.order_number_sequence import OrderNumberSequence
from liveorders.models.order_status import OrderStatusHistory
from liveorders.models.product_configuration import ProductConfiguration
from liveorders.models.seller_settings import SellerSettings
from liveorders.models.user import User

__all__ = [
    "LiveSession",
    "Order",
    "OrderItem",
    "OrderItemStatus",
    "OrderNumberSequence",
    "OrderStatus",
    "OrderStatusHistory",
    "ProductConfiguration",
    "SellerSettings",
    "User",
]
