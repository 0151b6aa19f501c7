"""Service wiring shared by the API routes and the scheduler script."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from fastapi import Depends, Request

from kpi_engine.config import AppSettings
from kpi_engine.db.database import Database
from kpi_engine.providers.accounting import AccountingClient, HttpAccountingClient, StaticAccountingClient
from kpi_engine.providers.commerce import CommerceClient, HttpCommerceClient, StaticCommerceClient
from kpi_engine.services.cash_sync import CashSyncManager
from kpi_engine.services.snapshots import SnapshotManager
from kpi_engine.services.store import InMemorySnapshotStore, SnapshotStore, SqlSnapshotStore


@dataclass
class EngineServices:
    settings: AppSettings
    accounting: AccountingClient
    commerce: CommerceClient
    store: SnapshotStore
    snapshots: SnapshotManager
    cash: CashSyncManager
    database: Database | None = None


def build_adapters(settings: AppSettings) -> tuple[AccountingClient, CommerceClient]:
    if settings.use_mock_data:
        return StaticAccountingClient(), StaticCommerceClient()
    accounting = HttpAccountingClient(
        settings.accounting_service_url,
        token=settings.accounting_service_token,
        timeout_seconds=settings.adapter_timeout_seconds,
    )
    commerce = HttpCommerceClient(
        settings.commerce_service_url,
        token=settings.commerce_service_token,
        timeout_seconds=settings.adapter_timeout_seconds,
    )
    return accounting, commerce


def build_services(
    settings: AppSettings,
    *,
    database: Database | None = None,
    accounting: AccountingClient | None = None,
    commerce: CommerceClient | None = None,
    store: SnapshotStore | None = None,
    clock: Callable[[], datetime] | None = None,
) -> EngineServices:
    """Assemble managers around one store; without a database the store is in-memory."""

    if accounting is None or commerce is None:
        default_accounting, default_commerce = build_adapters(settings)
        accounting = accounting or default_accounting
        commerce = commerce or default_commerce
    if store is None:
        store = SqlSnapshotStore(database) if database is not None else InMemorySnapshotStore()
    return EngineServices(
        settings=settings,
        accounting=accounting,
        commerce=commerce,
        store=store,
        snapshots=SnapshotManager(accounting, commerce, store, settings, clock=clock),
        cash=CashSyncManager(accounting, store, settings, clock=clock),
        database=database,
    )


def get_services(request: Request) -> EngineServices:
    return request.app.state.services


def get_snapshot_manager(services: EngineServices = Depends(get_services)) -> SnapshotManager:
    return services.snapshots


def get_cash_manager(services: EngineServices = Depends(get_services)) -> CashSyncManager:
    return services.cash


__all__ = [
    "EngineServices",
    "build_adapters",
    "build_services",
    "get_cash_manager",
    "get_services",
    "get_snapshot_manager",
]
