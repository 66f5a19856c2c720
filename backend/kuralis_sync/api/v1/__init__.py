"""API v1 router aggregation."""

from fastapi import APIRouter

from kuralis_sync.api.v1.listings import router as listings_router
from kuralis_sync.api.v1.orders import router as orders_router
from kuralis_sync.api.v1.runs import router as runs_router
from kuralis_sync.api.v1.webhooks import router as webhooks_router

router = APIRouter(prefix="/api/v1")

router.include_router(listings_router)
router.include_router(orders_router)
router.include_router(runs_router)
router.include_router(webhooks_router)
