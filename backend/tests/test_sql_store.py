"""Snapshot and cash history persistence on SQLite."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from kpi_engine.db.database import Database
from kpi_engine.providers.accounting import StaticAccountingClient
from kpi_engine.providers.commerce import StaticCommerceClient
from kpi_engine.schemas.cash import CashAdequacy
from kpi_engine.schemas.kpi import MetricKey
from kpi_engine.services.cash_sync import CashSyncManager
from kpi_engine.services.snapshots import SnapshotManager
from kpi_engine.services.store import SqlSnapshotStore


def _database(tmp_path: Path) -> Database:
    return Database(url=f"sqlite+aiosqlite:///{tmp_path / 'kpi.db'}")


async def test_snapshot_round_trips_through_sql(tmp_path: Path, settings, clock):
    database = _database(tmp_path)
    await database.create_all()
    try:
        store = SqlSnapshotStore(database)
        manager = SnapshotManager(StaticAccountingClient(), StaticCommerceClient(), store, settings, clock=clock)

        first = await manager.run_full_computation()
        second = await manager.run_full_computation()

        assert await store.count_snapshots() == 2
        latest = await store.latest_snapshot()
        assert latest is not None
        assert latest.id == second.id
        assert latest.date == second.date
        assert latest.kpis == second.kpis
        assert latest.alerts == second.alerts
        assert latest.data_source == second.data_source
        loaded = await store.get_snapshot(first.id)
        assert loaded is not None
        assert loaded.metric_value(MetricKey.CLEARANCE_POTENTIAL) == Decimal("1928.50")
        assert await store.get_snapshot("unknown") is None
    finally:
        await database.dispose()


async def test_get_latest_bootstrap_writes_one_row(tmp_path: Path, settings, clock):
    database = _database(tmp_path)
    await database.create_all()
    try:
        store = SqlSnapshotStore(database)
        manager = SnapshotManager(StaticAccountingClient(), StaticCommerceClient(), store, settings, clock=clock)

        bootstrapped = await manager.get_latest()
        again = await manager.get_latest()

        assert bootstrapped.id == again.id
        assert await store.count_snapshots() == 1
    finally:
        await database.dispose()


async def test_cash_history_is_newest_first(tmp_path: Path, settings, clock):
    database = _database(tmp_path)
    await database.create_all()
    try:
        store = SqlSnapshotStore(database)
        for cash, payables in (("900", "1000"), ("1300", "1000")):
            accounting = StaticAccountingClient(total_cash=Decimal(cash), pending_payables=Decimal(payables))
            await CashSyncManager(accounting, store, settings, clock=clock).sync_cash_balance()

        history = await store.recent_cash_statuses(5)

        assert [status.status for status in history] == [CashAdequacy.HEALTHY, CashAdequacy.CRITICAL]
        assert history[0].available == Decimal("1300.00")
        assert history[0].last_updated.tzinfo is not None
        assert (await store.latest_cash_status()) == history[0]
    finally:
        await database.dispose()
