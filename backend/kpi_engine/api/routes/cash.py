"""Cash adequacy endpoints."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from fastapi import APIRouter, Depends, HTTPException, Query, status

from kpi_engine.api.dependencies.services import get_cash_manager
from kpi_engine.schemas import (
    AffordabilityCheck,
    AffordabilityRequest,
    BatchAffordabilityCheck,
    CashImpactSummary,
    CashStatus,
    CashSyncResult,
)
from kpi_engine.services.cash_sync import CashSyncManager

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_orders(raw: str) -> list[Decimal]:
    """Comma separated order values; unparseable or non-positive entries are dropped."""

    values: list[Decimal] = []
    for part in raw.split(","):
        try:
            value = Decimal(part.strip())
        except InvalidOperation:
            continue
        if value.is_finite() and value > 0:
            values.append(value)
    return values


@router.post("/sync", response_model=CashSyncResult)
async def sync_cash(manager: CashSyncManager = Depends(get_cash_manager)) -> CashSyncResult:
    return await manager.sync_cash_balance()


@router.get("/status", response_model=CashStatus)
async def cash_status(manager: CashSyncManager = Depends(get_cash_manager)) -> CashStatus:
    return await manager.get_current_cash_status()


@router.get("/impact-summary", response_model=CashImpactSummary)
async def impact_summary(manager: CashSyncManager = Depends(get_cash_manager)) -> CashImpactSummary:
    return await manager.get_cash_impact_summary()


@router.post("/can-afford", response_model=AffordabilityCheck)
async def can_afford(
    payload: AffordabilityRequest,
    manager: CashSyncManager = Depends(get_cash_manager),
) -> AffordabilityCheck:
    logger.info("Checking affordability for %s: %s", payload.description or "order", payload.order_value)
    check = await manager.can_afford_order(payload.order_value)
    logger.info("Affordability result for %s: %s", payload.description or "order", check.reason)
    return check


@router.get("/can-afford", response_model=BatchAffordabilityCheck)
async def can_afford_batch(
    orders: str = Query(..., description="Comma separated order values"),
    manager: CashSyncManager = Depends(get_cash_manager),
) -> BatchAffordabilityCheck:
    values = _parse_orders(orders)
    if not values:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid order values provided")
    logger.info("Batch affordability check for %d orders", len(values))
    return await manager.can_afford_orders(values)


__all__ = ["router"]
