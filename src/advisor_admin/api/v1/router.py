"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.advisor_admin.api.v1 import collections, health

router = APIRouter()

router.include_router(health.router)
router.include_router(collections.router)
