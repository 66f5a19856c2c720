"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import redis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from kuralis_sync.config import get_settings
from kuralis_sync.errors import (
    ListingValidationError,
    PlatformNotConfiguredError,
    RecordNotFoundError,
    SyncLockUnavailable,
)
from kuralis_sync.models.base import engine, AsyncSessionLocal, Base
from kuralis_sync.models.job_run import JobRun  # noqa: F401
from kuralis_sync.models.kuralis_product import KuralisProduct  # noqa: F401
from kuralis_sync.models.listing import Listing  # noqa: F401
from kuralis_sync.models.order import Order  # noqa: F401
from kuralis_sync.models.shop import Shop  # noqa: F401
from kuralis_sync.api.v1 import router as api_v1_router

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info("Starting %s...", settings.app_name)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables verified")
    yield
    logger.info("Shutting down...")
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Listing synchronization between Shopify, eBay and the Kuralis catalog",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(api_v1_router)


ERROR_STATUS = {
    RecordNotFoundError: 404,
    PlatformNotConfiguredError: 409,
    SyncLockUnavailable: 409,
    ListingValidationError: 422,
}


async def sync_error_handler(request: Request, exc: Exception):
    status_code = next(code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls))
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


for error_class in ERROR_STATUS:
    app.add_exception_handler(error_class, sync_error_handler)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.app_name}


@app.get("/health/detailed")
async def detailed_health_check():
    checks = {}

    # Database
    try:
        async with AsyncSessionLocal() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            checks["database"] = {"ok": True}
    except Exception as e:
        checks["database"] = {"ok": False, "message": str(e)}

    # Redis (broker and sync locks)
    try:
        r = redis.from_url(settings.redis_url, socket_timeout=5)
        r.ping()
        checks["redis"] = {"ok": True}
    except Exception as e:
        checks["redis"] = {"ok": False, "message": str(e)}

    # Celery workers and their queues
    try:
        from kuralis_sync.tasks.celery_app import celery_app
        inspect = celery_app.control.inspect(timeout=5)
        active_queues = inspect.active_queues()
        checks["celery_workers"] = {
            "ok": bool(active_queues),
            "workers": list(active_queues.keys()) if active_queues else [],
            "queues": sorted({q["name"] for queues in (active_queues or {}).values() for q in queues}),
        }
    except Exception as e:
        checks["celery_workers"] = {"ok": False, "message": str(e)}

    all_ok = all(check.get("ok", False) for check in checks.values())
    status = "healthy" if all_ok else "degraded"

    return {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
