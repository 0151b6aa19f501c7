"""Cash adequacy classification, sync and affordability."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from kpi_engine.core.errors import UpstreamUnavailable
from kpi_engine.providers.accounting import AccountingServiceError, StaticAccountingClient
from kpi_engine.providers.commerce import StaticCommerceClient
from kpi_engine.schemas.cash import AffordabilityRecommendation, BatchRecommendation, CashAdequacy
from kpi_engine.schemas.kpi import TrendDirection
from kpi_engine.services.cash_sync import CashSyncManager, classify_cash_adequacy
from kpi_engine.services.snapshots import SnapshotManager
from kpi_engine.services.store import InMemorySnapshotStore


class BrokenAccountingClient(StaticAccountingClient):
    async def get_cash_position(self):
        raise AccountingServiceError("accounting service error 401: token expired")


@pytest.mark.parametrize(
    "available, payables, expected",
    [
        ("900", "1000", CashAdequacy.CRITICAL),
        ("1100", "1000", CashAdequacy.WARNING),
        ("1200", "1000", CashAdequacy.HEALTHY),
        ("1300", "1000", CashAdequacy.HEALTHY),
        ("0", "0", CashAdequacy.HEALTHY),
    ],
)
def test_classify_cash_adequacy(settings, available, payables, expected):
    assert classify_cash_adequacy(Decimal(available), Decimal(payables), settings.cash_safety_margin) is expected


def test_safety_margin_is_configurable():
    assert classify_cash_adequacy(Decimal("1100"), Decimal("1000"), Decimal("1.05")) is CashAdequacy.HEALTHY


async def test_sync_estimates_payables_when_ledger_has_none(settings, clock):
    store = InMemorySnapshotStore()
    manager = CashSyncManager(StaticAccountingClient(), store, settings, clock=clock)

    result = await manager.sync_cash_balance()

    assert result.cash_data.payables_estimated is True
    assert result.status.available == Decimal("45000.00")
    assert result.status.pending_payables == Decimal("6750.00")
    assert result.status.status is CashAdequacy.HEALTHY
    assert await store.latest_cash_status() == result.status


async def test_sync_uses_reported_payables(settings, clock):
    accounting = StaticAccountingClient(total_cash=Decimal("1100"), pending_payables=Decimal("1000"))
    manager = CashSyncManager(accounting, InMemorySnapshotStore(), settings, clock=clock)

    result = await manager.sync_cash_balance()

    assert result.cash_data.payables_estimated is False
    assert result.status.status is CashAdequacy.WARNING
    assert result.status.net_cash == Decimal("100.00")


async def test_failed_sync_writes_nothing(settings, clock):
    store = InMemorySnapshotStore()
    manager = CashSyncManager(BrokenAccountingClient(), store, settings, clock=clock)

    with pytest.raises(UpstreamUnavailable) as excinfo:
        await manager.sync_cash_balance()

    assert excinfo.value.source == "accounting"
    assert await store.recent_cash_statuses(10) == []


async def test_current_status_bootstraps_once_then_reads_cache(settings, clock):
    store = InMemorySnapshotStore()
    manager = CashSyncManager(StaticAccountingClient(), store, settings, clock=clock)

    first = await manager.get_current_cash_status()
    second = await manager.get_current_cash_status()

    assert first.id == second.id
    assert len(await store.recent_cash_statuses(10)) == 1


async def test_impact_summary_is_cache_only(settings, clock):
    manager = CashSyncManager(BrokenAccountingClient(), InMemorySnapshotStore(), settings, clock=clock)

    summary = await manager.get_cash_impact_summary()

    assert summary.current is None
    assert summary.records_considered == 0


async def test_impact_summary_aggregates_history_and_snapshot(settings, clock):
    store = InMemorySnapshotStore()
    for cash in ("40000", "42000", "45000"):
        await CashSyncManager(
            StaticAccountingClient(total_cash=Decimal(cash)), store, settings, clock=clock
        ).sync_cash_balance()
    snapshots = SnapshotManager(StaticAccountingClient(), StaticCommerceClient(), store, settings, clock=clock)
    await snapshots.run_full_computation()
    manager = CashSyncManager(BrokenAccountingClient(), store, settings, clock=clock)

    summary = await manager.get_cash_impact_summary()

    assert summary.records_considered == 3
    assert summary.current is not None and summary.current.available == Decimal("45000.00")
    assert summary.available_change == Decimal("5000.00")
    assert summary.trend is TrendDirection.UP
    assert summary.status_counts[CashAdequacy.HEALTHY] == 3
    assert summary.clearance_recovery_potential == Decimal("1928.50")
    # Mug and ornament reorders
    assert summary.critical_reorder_exposure == Decimal("636.90")
    assert summary.can_cover_critical_orders is True


@pytest.mark.parametrize(
    "order_value, can_afford, recommendation",
    [
        ("10000", True, AffordabilityRecommendation.APPROVED_TO_ORDER),
        ("35000", False, AffordabilityRecommendation.REVIEW_CASH_FLOW),
        ("40000", False, AffordabilityRecommendation.INSUFFICIENT_FUNDS),
    ],
)
async def test_can_afford_order(settings, clock, order_value, can_afford, recommendation):
    # 45,000 available less 6,750 estimated payables leaves 38,250 net
    manager = CashSyncManager(StaticAccountingClient(), InMemorySnapshotStore(), settings, clock=clock)

    check = await manager.can_afford_order(Decimal(order_value))

    assert check.can_afford is can_afford
    assert check.recommendation is recommendation
    assert check.net_cash_after == Decimal("38250.00") - Decimal(order_value)


class LaggingCashStore(InMemorySnapshotStore):
    """Reads the cash table immediately but answers after a delay."""

    async def latest_cash_status(self):
        status = await super().latest_cash_status()
        await asyncio.sleep(0.05)
        return status


async def test_overlapping_status_reads_sync_once(settings, clock):
    store = LaggingCashStore()
    manager = CashSyncManager(StaticAccountingClient(), store, settings, clock=clock)

    first = asyncio.create_task(manager.get_current_cash_status())
    await asyncio.sleep(0.07)
    second = asyncio.create_task(manager.get_current_cash_status())
    results = await asyncio.gather(first, second)

    assert results[0].id == results[1].id
    assert len(await store.recent_cash_statuses(10)) == 1


@pytest.mark.parametrize("total_cash, can_cover", [("6000", False), ("6000.01", True)])
async def test_covering_critical_orders_needs_more_than_the_buffer(settings, clock, total_cash, can_cover):
    # No snapshot, so exposure is zero and only the 5,000 buffer counts
    accounting = StaticAccountingClient(total_cash=Decimal(total_cash), pending_payables=Decimal("1000"))
    manager = CashSyncManager(accounting, InMemorySnapshotStore(), settings, clock=clock)
    await manager.sync_cash_balance()

    summary = await manager.get_cash_impact_summary()

    assert summary.can_cover_critical_orders is can_cover


@pytest.mark.parametrize(
    "orders, recommendation, affordable_count, total_affordable",
    [
        (("1000", "2500"), BatchRecommendation.ALL_ORDERS_APPROVED, 2, "3500"),
        (("10000", "35000", "40000"), BatchRecommendation.PARTIAL_APPROVAL, 1, "10000"),
        (("35000", "40000"), BatchRecommendation.NO_ORDERS_APPROVED, 0, "0"),
    ],
)
async def test_can_afford_orders_checks_each_order_independently(
    settings, clock, orders, recommendation, affordable_count, total_affordable
):
    store = InMemorySnapshotStore()
    manager = CashSyncManager(StaticAccountingClient(), store, settings, clock=clock)
    values = [Decimal(value) for value in orders]

    batch = await manager.can_afford_orders(values)

    assert batch.recommendation is recommendation
    assert batch.total_orders == len(values)
    assert batch.total_value == sum(values, Decimal("0"))
    assert batch.affordable_count == affordable_count
    assert batch.total_affordable == Decimal(total_affordable)
    assert batch.can_afford_all is (affordable_count == len(values))
    assert [check.net_cash_after for check in batch.orders] == [Decimal("38250.00") - value for value in values]
    assert len(await store.recent_cash_statuses(10)) == 1
