# liveorders/metrics.py
from __future__ import annotations

import os

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, CollectorRegistry, Counter, generate_latest, multiprocess

# 业务指标
RESERVATIONS = Counter(
    "liveorders_reservations_total", "Inventory reservation attempts", ["result"]
)
RELEASED_UNITS = Counter("liveorders_released_units_total", "Units released back to inventory")
PROMOTIONS = Counter("liveorders_waiting_promotions_total", "Waiting entries promoted")
EXPIRED_ORDERS = Counter("liveorders_expired_orders_total", "Orders transitioned to expired")
IDENTITY_MERGES = Counter(
    "liveorders_identity_resolutions_total", "Anonymous orders resolved", ["mode"]
)
NOTIFY_FAILURES = Counter("liveorders_notify_failures_total", "Back-in-stock notification failures")

router = APIRouter()


@router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    """
    单进程：直接导出默认 REGISTRY；
    多进程（设置了 PROMETHEUS_MULTIPROC_DIR）：临时 CollectorRegistry 合并各分片。
    """
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        payload = generate_latest(registry)
    else:
        payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
