# backend/reservo/main.py
"""
FastAPI application for the Reservo booking engine.

Mounts the v1 routers under /api/v1 and exposes Prometheus metrics at
/metrics. Run with ``uvicorn reservo.main:app``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
import logging
from typing import Any, AsyncGenerator

from fastapi import APIRouter, Depends, FastAPI, Request, Response
import ulid

from .api.dependencies import get_cache_service_dep
from .core.config import settings
from .core.request_context import configure_logging, reset_request_id, set_request_id
from .database import init_db
from .monitoring.prometheus_metrics import prometheus_metrics
from .routes.v1 import (
    bookings as bookings_v1,
    businesses as businesses_v1,
    customers as customers_v1,
    services as services_v1,
)
from .services.cache_service import CacheService

logger = logging.getLogger(__name__)

API_TITLE = "Reservo Booking Engine"
API_VERSION = "1.0.0"

configure_logging(settings)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(
        "Starting %s %s (environment=%s, timezone=%s)",
        API_TITLE,
        API_VERSION,
        settings.environment,
        settings.default_timezone_label,
    )
    init_db()
    yield
    logger.info("Shutting down %s", API_TITLE)


app = FastAPI(
    title=API_TITLE,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)


@app.middleware("http")
async def request_id_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag every log record of the request with its X-Request-ID."""
    request_id = request.headers.get("X-Request-ID") or str(ulid.ULID())
    token = set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        reset_request_id(token)
    response.headers["X-Request-ID"] = request_id
    return response


api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(bookings_v1.router, prefix="/bookings")
api_v1.include_router(services_v1.router, prefix="/services")
api_v1.include_router(customers_v1.router, prefix="/customers")
api_v1.include_router(businesses_v1.router, prefix="/businesses")
app.include_router(api_v1)


@app.get("/health", tags=["health"])
def health_check(cache: CacheService = Depends(get_cache_service_dep)) -> dict[str, Any]:
    return {
        "status": "healthy",
        "environment": settings.environment,
        "cache": cache.get_stats(),
    }


@app.get("/metrics", include_in_schema=False)
def metrics_endpoint() -> Response:
    """Prometheus scrape endpoint (dedicated registry)."""
    return Response(content=prometheus_metrics.get_metrics(), media_type=prometheus_metrics.get_content_type())


__all__ = ["app"]
