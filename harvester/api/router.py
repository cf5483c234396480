from __future__ import annotations

from fastapi import APIRouter

from harvester.api.routers import scans

router = APIRouter(prefix="/api/v1")
router.include_router(scans.router)
