"""Upstream connectivity check."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends

from kpi_engine.api.dependencies.services import EngineServices, get_services
from kpi_engine.schemas import HealthResponse

router = APIRouter()


@router.get("", response_model=HealthResponse)
async def health(services: EngineServices = Depends(get_services)) -> HealthResponse:
    """Report which integrations are reachable and whether AI assist is configured."""

    accounting, commerce = await asyncio.gather(
        services.accounting.test_connection(),
        services.commerce.test_connection(),
    )
    return HealthResponse(
        accounting=accounting,
        commerce=commerce,
        ai=bool(services.settings.ai_assist_api_key),
    )


__all__ = ["router"]
