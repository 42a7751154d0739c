# liveorders/api/problem.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder

from liveorders.services.errors import OrderDomainError


@dataclass(frozen=True)
class Problem:
    error_code: str
    message: str
    http_status: int
    context: Optional[Dict[str, Any]] = None
    trace_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "error_code": self.error_code,
            "message": self.message,
            "http_status": int(self.http_status),
        }
        if self.context:
            out["context"] = jsonable_encoder(self.context)
        if self.trace_id:
            out["trace_id"] = self.trace_id
        return out


def make_problem(
    *,
    status_code: int,
    error_code: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    trace_id: Optional[str] = None,
) -> Dict[str, Any]:
    p = Problem(
        error_code=str(error_code),
        message=str(message),
        http_status=int(status_code),
        context=context,
        trace_id=trace_id,
    )
    return p.to_dict()


def problem_from_error(exc: OrderDomainError, *, trace_id: Optional[str] = None) -> Dict[str, Any]:
    """业务异常 → problem 结构（PersistenceError 只带通用信息）。"""
    return make_problem(
        status_code=exc.http_status,
        error_code=exc.code,
        message=exc.message,
        context=exc.context,
        trace_id=trace_id,
    )
