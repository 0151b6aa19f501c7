"""KPI snapshot endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from kpi_engine.api.dependencies.services import get_snapshot_manager
from kpi_engine.schemas import ComputationRequest, KpiSnapshot
from kpi_engine.services.snapshots import SnapshotManager

router = APIRouter()


@router.post("/snapshots", response_model=KpiSnapshot)
async def trigger_snapshot(
    payload: ComputationRequest | None = None,
    manager: SnapshotManager = Depends(get_snapshot_manager),
) -> KpiSnapshot:
    payload = payload or ComputationRequest()
    period = None
    if payload.start is not None or payload.end is not None:
        period = manager.resolve_period(payload.start, payload.end)
    return await manager.run_full_computation(
        period,
        require_durable=payload.require_durable,
        policy=payload.policy,
    )


@router.get("/snapshots/latest", response_model=KpiSnapshot)
async def latest_snapshot(manager: SnapshotManager = Depends(get_snapshot_manager)) -> KpiSnapshot:
    return await manager.get_latest()


@router.get("/snapshots/{snapshot_id}", response_model=KpiSnapshot)
async def get_snapshot(
    snapshot_id: str,
    manager: SnapshotManager = Depends(get_snapshot_manager),
) -> KpiSnapshot:
    return await manager.get_snapshot(snapshot_id)


__all__ = ["router"]
