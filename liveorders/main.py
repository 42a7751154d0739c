# liveorders/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from liveorders.api.problem import make_problem, problem_from_error
from liveorders.api.routers.health import router as health_router
from liveorders.api.routers.inventory import router as inventory_router
from liveorders.api.routers.messenger import router as messenger_router
from liveorders.api.routers.orders import router as orders_router
from liveorders.core.audit import new_trace
from liveorders.core.config import get_settings
from liveorders.core.logging import setup_logging
from liveorders.db.session import close_engines
from liveorders.metrics import router as metrics_router
from liveorders.services.errors import OrderDomainError

settings = get_settings()
setup_logging(settings.LOG_LEVEL, json=settings.JSON_LOG)
logger = logging.getLogger("liveorders")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    await close_engines()


app = FastAPI(
    title="live-orders",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "http://127.0.0.1:8000",
        "http://localhost:8000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(OrderDomainError)
async def _domain_exc(req: Request, exc: OrderDomainError):
    trace = new_trace(f"http:{req.url.path}")
    if exc.http_status >= 500:
        logger.error("DOMAIN_EXC trace=%s %s: %s", trace.trace_id, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content=problem_from_error(exc, trace_id=trace.trace_id),
    )


@app.exception_handler(RequestValidationError)
async def _validation_exc(_req: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=make_problem(
            status_code=422,
            error_code="VALIDATION_ERROR",
            message="request validation failed",
            context={"errors": exc.errors()},
        ),
    )


@app.exception_handler(Exception)
async def _unhandled_exc(req: Request, exc: Exception):
    trace = new_trace(f"http:{req.url.path}")
    logger.exception("UNHANDLED_EXC trace=%s: %s", trace.trace_id, exc)
    return JSONResponse(
        status_code=500,
        content=make_problem(
            status_code=500,
            error_code="INTERNAL_ERROR",
            message="internal error",
            trace_id=trace.trace_id,
        ),
    )


# ===========================
#          挂载路由
# ===========================
app.include_router(orders_router)
app.include_router(messenger_router)
app.include_router(inventory_router)
app.include_router(health_router)
app.include_router(metrics_router)
