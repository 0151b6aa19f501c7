"""Snapshot manager orchestration, degradation and concurrency."""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal

import httpx
import pytest

from kpi_engine.core.errors import (
    ComputationInProgress,
    InvalidPeriod,
    PersistenceFailure,
    SnapshotNotFound,
    UpstreamUnavailable,
)
from kpi_engine.providers.accounting import AccountingServiceError, StaticAccountingClient
from kpi_engine.providers.commerce import CommerceServiceError, HttpCommerceClient, StaticCommerceClient
from kpi_engine.providers.facts import ReportingPeriod
from kpi_engine.schemas.kpi import MetricKey
from kpi_engine.services.derivation import ACCOUNTING_METRICS, COMMERCE_METRICS
from kpi_engine.services.snapshots import SnapshotManager
from kpi_engine.services.store import InMemorySnapshotStore


class BrokenCommerceClient(StaticCommerceClient):
    async def get_inventory(self):
        raise CommerceServiceError("commerce service error 502: bad gateway")


class BrokenAccountingClient(StaticAccountingClient):
    async def get_cash_position(self):
        raise AccountingServiceError("accounting service error 503: maintenance")


class SlowCommerceClient(StaticCommerceClient):
    """Blocks inventory reads until released."""

    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()
        self.calls = 0

    async def get_inventory(self):
        self.calls += 1
        await self.release.wait()
        return await super().get_inventory()


class HangingCommerceClient(StaticCommerceClient):
    async def get_inventory(self):
        await asyncio.sleep(60)
        return []


class CountingAccountingClient(StaticAccountingClient):
    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    async def get_cash_position(self):
        self.calls += 1
        return await super().get_cash_position()


class RefusingStore(InMemorySnapshotStore):
    async def add_snapshot(self, snapshot):
        raise PersistenceFailure("disk full")


def _manager(settings, clock, *, accounting=None, commerce=None, store=None, policy=None):
    return SnapshotManager(
        accounting or StaticAccountingClient(),
        commerce or StaticCommerceClient(),
        store if store is not None else InMemorySnapshotStore(),
        settings,
        clock=clock,
        policy=policy,
    )


async def test_full_computation_persists_snapshot(settings, clock):
    store = InMemorySnapshotStore()
    manager = _manager(settings, clock, store=store)

    snapshot = await manager.run_full_computation()

    assert await store.count_snapshots() == 1
    assert snapshot.period.start == date(2026, 10, 1)
    assert snapshot.period.end == date(2026, 10, 15)
    assert set(snapshot.kpis) == set(ACCOUNTING_METRICS) | set(COMMERCE_METRICS)
    assert snapshot.data_source.accounting and snapshot.data_source.commerce
    assert snapshot.data_source.fallback_metrics == ()
    assert snapshot.data_source.persisted is True
    priorities = [alert.priority for alert in snapshot.alerts]
    assert priorities == sorted(priorities)
    assert (await store.get_snapshot(snapshot.id)) == snapshot


async def test_net_income_carries_ledger_figures_unchanged(settings, clock):
    accounting = StaticAccountingClient(total_revenue=Decimal("31234.56"), total_expenses=Decimal("29876.54"))
    manager = _manager(settings, clock, accounting=accounting)

    snapshot = await manager.run_full_computation()
    profit_loss = await accounting.get_profit_loss(
        ReportingPeriod(start=snapshot.period.start, end=snapshot.period.end)
    )

    assert profit_loss.total_revenue - profit_loss.total_expenses == profit_loss.net_income
    assert snapshot.metric_value(MetricKey.NET_INCOME) == Decimal("1358.02")


async def test_get_latest_is_idempotent(settings, clock):
    store = InMemorySnapshotStore()
    manager = _manager(settings, clock, store=store)
    await manager.run_full_computation()

    first = await manager.get_latest()
    second = await manager.get_latest()

    assert first.id == second.id
    assert await store.count_snapshots() == 1


async def test_get_latest_bootstraps_exactly_once(settings, clock):
    store = InMemorySnapshotStore()
    accounting = CountingAccountingClient()
    manager = _manager(settings, clock, accounting=accounting, store=store)

    first, second = await asyncio.gather(manager.get_latest(), manager.get_latest())

    assert first.id == second.id
    assert first.data_source.persisted is True
    assert await store.count_snapshots() == 1
    assert accounting.calls == 1
    assert (await manager.get_latest()).id == first.id


async def test_degraded_commerce_keeps_accounting_fresh(settings, clock):
    store = InMemorySnapshotStore()
    healthy = _manager(settings, clock, store=store)
    baseline = await healthy.run_full_computation()

    degraded = _manager(settings, clock, commerce=BrokenCommerceClient(), store=store)
    snapshot = await degraded.run_full_computation()

    assert snapshot.data_source.accounting is True
    assert snapshot.data_source.commerce is False
    assert set(snapshot.data_source.fallback_metrics) == set(COMMERCE_METRICS)
    for key in COMMERCE_METRICS:
        assert snapshot.kpis[key].stale is True
        assert snapshot.kpis[key].value == baseline.kpis[key].value
    for key in ACCOUNTING_METRICS:
        assert snapshot.kpis[key].stale is False
    assert not any(alert.id.startswith("reorder_") for alert in snapshot.alerts)
    assert await store.count_snapshots() == 2


async def test_degraded_commerce_without_history_omits_inventory_metrics(settings, clock):
    manager = _manager(settings, clock, commerce=BrokenCommerceClient())

    snapshot = await manager.run_full_computation()

    assert set(snapshot.kpis) == set(ACCOUNTING_METRICS)
    assert snapshot.data_source.fallback_metrics == ()


async def test_all_adapters_down_without_history_raises(settings, clock):
    store = InMemorySnapshotStore()
    manager = _manager(
        settings, clock, accounting=BrokenAccountingClient(), commerce=BrokenCommerceClient(), store=store
    )

    with pytest.raises(UpstreamUnavailable) as excinfo:
        await manager.run_full_computation()

    assert "maintenance" in excinfo.value.detail
    assert await store.count_snapshots() == 0


async def test_all_adapters_down_with_history_serves_stale_snapshot(settings, clock):
    store = InMemorySnapshotStore()
    await _manager(settings, clock, store=store).run_full_computation()
    manager = _manager(
        settings, clock, accounting=BrokenAccountingClient(), commerce=BrokenCommerceClient(), store=store
    )

    snapshot = await manager.run_full_computation()

    assert all(metric.stale for metric in snapshot.kpis.values())
    assert len(snapshot.data_source.fallback_metrics) == 8


async def test_adapter_timeout_becomes_upstream_failure(settings, clock):
    manager = _manager(settings.model_copy(update={"adapter_timeout_seconds": 0.05}), clock, commerce=HangingCommerceClient())

    snapshot = await manager.run_full_computation()

    assert snapshot.data_source.commerce is False
    assert snapshot.data_source.accounting is True


async def test_invalid_period_fails_before_upstream_calls(settings, clock):
    accounting = CountingAccountingClient()
    manager = _manager(settings, clock, accounting=accounting)

    with pytest.raises(InvalidPeriod):
        await manager.run_full_computation(ReportingPeriod(start=date(2026, 10, 10), end=date(2026, 10, 1)))

    assert accounting.calls == 0


async def test_concurrent_triggers_share_one_computation(settings, clock):
    store = InMemorySnapshotStore()
    commerce = SlowCommerceClient()
    manager = _manager(settings, clock, commerce=commerce, store=store, policy="WAIT")

    first = asyncio.create_task(manager.run_full_computation())
    second = asyncio.create_task(manager.run_full_computation())
    await asyncio.sleep(0)
    commerce.release.set()
    results = await asyncio.gather(first, second)

    assert results[0].id == results[1].id
    assert commerce.calls == 1
    assert await store.count_snapshots() == 1


async def test_reject_policy_refuses_second_trigger(settings, clock):
    store = InMemorySnapshotStore()
    commerce = SlowCommerceClient()
    manager = _manager(settings, clock, commerce=commerce, store=store, policy="REJECT")

    running = asyncio.create_task(manager.run_full_computation())
    await asyncio.sleep(0)
    with pytest.raises(ComputationInProgress):
        await manager.run_full_computation()
    commerce.release.set()
    await running

    assert await store.count_snapshots() == 1


async def test_per_call_policy_overrides_manager_default(settings, clock):
    commerce = SlowCommerceClient()
    manager = _manager(settings, clock, commerce=commerce, policy="WAIT")

    running = asyncio.create_task(manager.run_full_computation())
    await asyncio.sleep(0)
    with pytest.raises(ComputationInProgress):
        await manager.run_full_computation(policy="REJECT")
    commerce.release.set()
    await running


async def test_cancelled_caller_does_not_cancel_computation(settings, clock):
    store = InMemorySnapshotStore()
    commerce = SlowCommerceClient()
    manager = _manager(settings, clock, commerce=commerce, store=store)

    caller = asyncio.create_task(manager.run_full_computation())
    await asyncio.sleep(0)
    caller.cancel()
    with pytest.raises(asyncio.CancelledError):
        await caller

    commerce.release.set()
    for _ in range(20):
        if not manager.computing:
            break
        await asyncio.sleep(0.01)

    assert await store.count_snapshots() == 1


async def test_persistence_failure_is_reported_not_raised(settings, clock):
    manager = _manager(settings, clock, store=RefusingStore())

    snapshot = await manager.run_full_computation()

    assert snapshot.data_source.persisted is False
    assert snapshot.kpis


async def test_persistence_failure_raises_when_durability_required(settings, clock):
    manager = _manager(settings, clock, store=RefusingStore())

    with pytest.raises(PersistenceFailure):
        await manager.run_full_computation(require_durable=True)


async def test_trend_compares_against_previous_snapshot(settings, clock):
    store = InMemorySnapshotStore()
    await _manager(settings, clock, store=store).run_full_computation()
    richer = _manager(settings, clock, accounting=StaticAccountingClient(total_cash=Decimal("54000")), store=store)

    snapshot = await richer.run_full_computation()

    trend = snapshot.kpis[MetricKey.CASH_ON_HAND].trend
    assert trend is not None
    assert trend.direction.value == "up"
    assert trend.value == Decimal("20.0")


async def test_get_snapshot_unknown_id(settings, clock):
    manager = _manager(settings, clock)

    with pytest.raises(SnapshotNotFound):
        await manager.get_snapshot("missing")


class LaggingSnapshotStore(InMemorySnapshotStore):
    """Reads the snapshot table immediately but answers after a delay."""

    async def latest_snapshot(self):
        snapshot = await super().latest_snapshot()
        await asyncio.sleep(0.05)
        return snapshot


class GarbledAccountingClient(StaticAccountingClient):
    async def get_cogs(self, period):
        raise KeyError("total_cogs")


def _inventory_client(rows) -> HttpCommerceClient:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=rows))
    return HttpCommerceClient("http://storefront", client=httpx.AsyncClient(transport=transport))


async def test_malformed_inventory_degrades_only_commerce(settings, clock):
    store = InMemorySnapshotStore()
    commerce = _inventory_client([{"sku": "A", "price": "10", "available_quantity": "n/a"}])
    manager = _manager(settings, clock, commerce=commerce, store=store)

    snapshot = await manager.run_full_computation()

    assert snapshot.data_source.accounting is True
    assert snapshot.data_source.commerce is False
    assert set(snapshot.kpis) == set(ACCOUNTING_METRICS)
    assert snapshot.metric_value(MetricKey.CASH_ON_HAND) == Decimal("45000.00")
    assert await store.count_snapshots() == 1


async def test_unexpected_adapter_error_degrades_only_accounting(settings, clock):
    store = InMemorySnapshotStore()
    await _manager(settings, clock, store=store).run_full_computation()
    manager = _manager(settings, clock, accounting=GarbledAccountingClient(), store=store)

    snapshot = await manager.run_full_computation()

    assert snapshot.data_source.accounting is False
    assert snapshot.data_source.commerce is True
    assert set(snapshot.data_source.fallback_metrics) == set(ACCOUNTING_METRICS)


async def test_overlapping_latest_reads_write_one_snapshot(settings, clock):
    store = LaggingSnapshotStore()
    manager = _manager(settings, clock, store=store)

    first = asyncio.create_task(manager.get_latest())
    await asyncio.sleep(0.07)
    second = asyncio.create_task(manager.get_latest())
    results = await asyncio.gather(first, second)

    assert results[0].id == results[1].id
    assert await store.count_snapshots() == 1
