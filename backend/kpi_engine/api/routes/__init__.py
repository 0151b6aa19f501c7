"""Route registration helpers."""

from __future__ import annotations

from fastapi import APIRouter

from .cash import router as cash_router
from .health import router as health_router
from .kpi import router as kpi_router

api_router = APIRouter()
api_router.include_router(kpi_router, prefix="/kpi", tags=["kpi"])
api_router.include_router(cash_router, prefix="/cash", tags=["cash"])
api_router.include_router(health_router, prefix="/health", tags=["health"])

__all__ = ["api_router"]
