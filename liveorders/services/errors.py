# liveorders/services/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class OrderDomainError(Exception):
    """
    业务异常基类：带 error_code / http_status / context，
    由 API 层统一转成 problem 结构。
    """

    code = "ORDER_ERROR"
    http_status = 400

    def __init__(self, message: str, *, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}


class InsufficientInventory(OrderDomainError):
    """可用库存不足（非致命：上层转为等待行）"""

    code = "INSUFFICIENT_INVENTORY"
    http_status = 409

    def __init__(self, *, configuration_id: int, requested: int, available: int) -> None:
        super().__init__(
            f"insufficient inventory for configuration={configuration_id}: "
            f"need {requested}, available {available}",
            context={
                "configuration_id": configuration_id,
                "requested_qty": requested,
                "available_qty": available,
            },
        )
        self.configuration_id = configuration_id
        self.requested = requested
        self.available = available


class ValidationError(OrderDomainError):
    """请求不合法"""

    code = "VALIDATION_ERROR"
    http_status = 422


class NotFoundError(OrderDomainError):
    """实体不存在"""

    code = "NOT_FOUND"
    http_status = 404


class InvalidTransition(OrderDomainError):
    """订单状态机不允许的迁移"""

    code = "INVALID_TRANSITION"
    http_status = 409


class ConflictError(OrderDomainError):
    """并发修改：重查后仍冲突（重试耗尽）"""

    code = "CONFLICT"
    http_status = 409


class PersistenceError(OrderDomainError):
    """事务 / 查询失败；对调用方只暴露通用信息"""

    code = "PERSISTENCE_ERROR"
    http_status = 500

    def __init__(self, operation: str) -> None:
        super().__init__(f"{operation} failed", context={"operation": operation})
        self.operation = operation
