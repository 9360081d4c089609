"""API v1 router configuration."""

from fastapi import APIRouter

from api.v1.routes.delivery import router as delivery_router
from api.v1.routes.notifications import router as notifications_router

router = APIRouter()
router.include_router(notifications_router)
router.include_router(delivery_router)
