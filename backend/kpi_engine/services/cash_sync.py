"""Cash balance synchronisation and adequacy tracking."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Sequence

from kpi_engine.config import AppSettings, get_settings
from kpi_engine.core.telemetry import get_engine_metrics, get_tracer
from kpi_engine.providers.accounting import AccountingClient
from kpi_engine.schemas.cash import (
    AffordabilityCheck,
    AffordabilityRecommendation,
    BatchAffordabilityCheck,
    BatchRecommendation,
    CashAdequacy,
    CashBalanceData,
    CashImpactSummary,
    CashStatus,
    CashSyncResult,
)
from kpi_engine.schemas.kpi import AlertType, MetricKey, TrendDirection

from .derivation import ZERO, format_currency, to_money
from .snapshots import call_adapter
from .store import SnapshotStore

logger = logging.getLogger(__name__)


def classify_cash_adequacy(
    available: Decimal,
    pending_payables: Decimal,
    safety_margin: Decimal,
) -> CashAdequacy:
    if available < pending_payables:
        return CashAdequacy.CRITICAL
    if available < pending_payables * safety_margin:
        return CashAdequacy.WARNING
    return CashAdequacy.HEALTHY


class CashSyncManager:
    """Keep an append-only history of cash against pending payables."""

    def __init__(
        self,
        accounting: AccountingClient,
        store: SnapshotStore,
        settings: AppSettings | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._accounting = accounting
        self._store = store
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._bootstrap_lock = asyncio.Lock()

    async def sync_cash_balance(self) -> CashSyncResult:
        """Pull the current cash position and append a classified status.

        Nothing is written when the accounting adapter fails.
        """

        tracer = get_tracer()
        with tracer.start_as_current_span("cash.sync_cash_balance") as span:
            position = await call_adapter(
                "accounting",
                self._accounting.get_cash_position(),
                self._settings.adapter_timeout_seconds,
            )
            available = to_money(position.total_cash)
            estimated = position.pending_payables is None
            if estimated:
                payables = to_money(available * self._settings.payables_estimate_ratio)
            else:
                payables = to_money(position.pending_payables)

            now = self._clock()
            status = CashStatus(
                id=str(uuid.uuid4()),
                available=available,
                pending_payables=payables,
                last_updated=now,
                status=classify_cash_adequacy(available, payables, self._settings.cash_safety_margin),
            )
            await self._store.add_cash_status(status)
            span.set_attribute("cash.status", status.status.value)
            get_engine_metrics().record_cash_sync(status.status.value)
            logger.info(
                "Cash synced: available=%s payables=%s%s status=%s",
                available,
                payables,
                " (estimated)" if estimated else "",
                status.status.value,
            )
            return CashSyncResult(
                cash_data=CashBalanceData(
                    available=available,
                    pending_payables=payables,
                    payables_estimated=estimated,
                    as_of=now,
                ),
                status=status,
            )

    async def get_current_cash_status(self) -> CashStatus:
        """Latest stored status; syncs once when no history exists yet."""

        status = await self._store.latest_cash_status()
        if status is not None:
            return status
        async with self._bootstrap_lock:
            status = await self._store.latest_cash_status()
            if status is not None:
                return status
            logger.info("No cash status stored yet; syncing")
            result = await self.sync_cash_balance()
            return result.status

    async def get_cash_impact_summary(self) -> CashImpactSummary:
        """Aggregate recent cash history with the latest KPI snapshot.

        Reads only what is already stored and never calls an adapter.
        """

        history = await self._store.recent_cash_statuses(self._settings.cash_history_window)
        if not history:
            return CashImpactSummary()

        current, oldest = history[0], history[-1]
        change = current.available - oldest.available
        if change > 0:
            trend = TrendDirection.UP
        elif change < 0:
            trend = TrendDirection.DOWN
        else:
            trend = TrendDirection.NEUTRAL
        counts = Counter(status.status for status in history)

        clearance = ZERO
        exposure = ZERO
        snapshot = await self._store.latest_snapshot()
        if snapshot is not None:
            clearance = snapshot.metric_value(MetricKey.CLEARANCE_POTENTIAL) or ZERO
            exposure = sum(
                (
                    alert.value or ZERO
                    for alert in snapshot.alerts
                    if alert.type is AlertType.CRITICAL and alert.id.startswith("reorder_")
                ),
                ZERO,
            )

        return CashImpactSummary(
            current=current,
            net_cash=current.net_cash,
            records_considered=len(history),
            available_change=change,
            trend=trend,
            status_counts={adequacy: counts.get(adequacy, 0) for adequacy in CashAdequacy},
            clearance_recovery_potential=clearance,
            critical_reorder_exposure=to_money(exposure),
            can_cover_critical_orders=current.net_cash > exposure + self._settings.minimum_cash_buffer,
        )

    def _assess(self, status: CashStatus, order_value: Decimal) -> AffordabilityCheck:
        buffer = self._settings.minimum_cash_buffer
        net_after = to_money(status.net_cash - order_value)

        if net_after > buffer:
            can_afford = True
            recommendation = AffordabilityRecommendation.APPROVED_TO_ORDER
            reason = f"Safe to order. Net cash after: {format_currency(net_after)}"
        elif net_after > 0:
            can_afford = False
            recommendation = AffordabilityRecommendation.REVIEW_CASH_FLOW
            reason = (
                f"Order would leave only {format_currency(net_after)} "
                f"(below {format_currency(buffer)} minimum)"
            )
        else:
            can_afford = False
            recommendation = AffordabilityRecommendation.INSUFFICIENT_FUNDS
            reason = f"Insufficient funds. Would overdraw by {format_currency(abs(net_after))}"

        return AffordabilityCheck(
            order_value=order_value,
            can_afford=can_afford,
            reason=reason,
            net_cash_after=net_after,
            recommendation=recommendation,
            status=status,
        )

    async def can_afford_order(self, order_value: Decimal) -> AffordabilityCheck:
        status = await self.get_current_cash_status()
        return self._assess(status, order_value)

    async def can_afford_orders(self, order_values: Sequence[Decimal]) -> BatchAffordabilityCheck:
        """Check each order on its own against the same cash status.

        Orders are not cumulative: every check starts from the current net cash.
        """

        status = await self.get_current_cash_status()
        checks = [self._assess(status, value) for value in order_values]
        affordable = [check for check in checks if check.can_afford]
        total_affordable = sum((check.order_value for check in affordable), ZERO)

        if checks and len(affordable) == len(checks):
            recommendation = BatchRecommendation.ALL_ORDERS_APPROVED
        elif total_affordable > 0:
            recommendation = BatchRecommendation.PARTIAL_APPROVAL
        else:
            recommendation = BatchRecommendation.NO_ORDERS_APPROVED

        return BatchAffordabilityCheck(
            total_orders=len(checks),
            total_value=sum(order_values, ZERO),
            total_affordable=total_affordable,
            affordable_count=len(affordable),
            can_afford_all=bool(checks) and len(affordable) == len(checks),
            orders=checks,
            recommendation=recommendation,
            status=status,
        )


__all__ = ["CashSyncManager", "classify_cash_adequacy"]
