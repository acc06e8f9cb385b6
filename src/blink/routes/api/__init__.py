"""API v1 router aggregation."""

from fastapi import APIRouter

from blink.routes.api import collections, environments, execution, items

router = APIRouter(prefix="/api/v1", tags=["api"])
router.include_router(collections.router)
router.include_router(items.router)
router.include_router(execution.router)
router.include_router(environments.router)
