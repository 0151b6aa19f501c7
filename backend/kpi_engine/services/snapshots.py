"""KPI snapshot orchestration.

The manager fans out to the accounting and commerce adapters, derives metrics,
classifies alerts and appends an immutable snapshot to the store. At most one
computation runs at a time; late callers either share the in-flight result
(``WAIT``) or are turned away (``REJECT``).
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, TypeVar
from zoneinfo import ZoneInfo

from kpi_engine.config import AppSettings, get_settings
from kpi_engine.core.errors import (
    ComputationInProgress,
    PersistenceFailure,
    SnapshotNotFound,
    UpstreamUnavailable,
)
from kpi_engine.core.telemetry import get_engine_metrics, get_tracer
from kpi_engine.providers.accounting import AccountingClient
from kpi_engine.providers.bridge import BridgeError
from kpi_engine.providers.commerce import CommerceClient
from kpi_engine.providers.facts import AccountingFacts, CommerceFacts, ReportingPeriod
from kpi_engine.schemas.kpi import DataSource, KpiSnapshot, Metric, MetricKey, ReportingPeriodSchema

from .alerts import AlertThresholds, classify_alerts
from .derivation import (
    ACCOUNTING_METRICS,
    COMMERCE_METRICS,
    carry_forward,
    derive_accounting_metrics,
    derive_commerce_metrics,
)
from .periods import resolve_period
from .store import SnapshotStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

WAIT = "WAIT"
REJECT = "REJECT"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def call_adapter(source: str, call: Awaitable[T], timeout: float) -> T:
    """Await an adapter call, translating any adapter failure into ``UpstreamUnavailable``."""

    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise UpstreamUnavailable(source, f"no response within {timeout:g}s") from exc
    except BridgeError as exc:
        raise UpstreamUnavailable(source, str(exc)) from exc
    except UpstreamUnavailable:
        raise
    except Exception as exc:
        logger.exception("Unexpected %s adapter failure", source)
        raise UpstreamUnavailable(source, f"unexpected {type(exc).__name__}: {exc}") from exc


class SnapshotManager:
    """Compute, persist and serve KPI snapshots."""

    def __init__(
        self,
        accounting: AccountingClient,
        commerce: CommerceClient,
        store: SnapshotStore,
        settings: AppSettings | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
        policy: str | None = None,
    ) -> None:
        self._accounting = accounting
        self._commerce = commerce
        self._store = store
        self._settings = settings or get_settings()
        self._clock = clock or _utcnow
        self._policy = (policy or self._settings.computation_policy).upper()
        self._thresholds = AlertThresholds.from_settings(self._settings)
        self._inflight: asyncio.Task[KpiSnapshot] | None = None
        self._bootstrap_lock = asyncio.Lock()

    @property
    def computing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def _today(self) -> date:
        return self._clock().astimezone(ZoneInfo(self._settings.timezone)).date()

    def resolve_period(self, start: date | None = None, end: date | None = None) -> ReportingPeriod:
        """Validate a period against the business-local calendar."""

        return resolve_period(start, end, today=self._today(), max_days=self._settings.max_period_days)

    async def run_full_computation(
        self,
        period: ReportingPeriod | None = None,
        *,
        require_durable: bool = False,
        policy: str | None = None,
    ) -> KpiSnapshot:
        """Compute and persist a new snapshot.

        Under ``WAIT`` a caller arriving while another computation runs
        receives that computation's snapshot, whatever period it was asked
        for. Cancelling the caller does not cancel the computation; its
        result is still persisted.
        """

        resolved = self.resolve_period(period.start if period else None, period.end if period else None)
        effective = (policy or self._policy).upper()

        task = self._inflight
        if task is not None and not task.done():
            if effective == REJECT:
                raise ComputationInProgress("a KPI computation is already running")
            logger.info("Joining in-flight KPI computation")
        else:
            task = asyncio.create_task(self._compute(resolved))
            task.add_done_callback(self._release)
            self._inflight = task

        snapshot = await asyncio.shield(task)
        if require_durable and not snapshot.data_source.persisted:
            raise PersistenceFailure(f"snapshot {snapshot.id} was computed but not persisted")
        return snapshot

    async def get_latest(self) -> KpiSnapshot:
        """Return the newest persisted snapshot.

        This read has a side effect: when the store is empty it runs one
        computation (joining any already in flight) and returns its result.
        """

        latest = await self._store.latest_snapshot()
        if latest is not None:
            return latest
        async with self._bootstrap_lock:
            # Another reader may have bootstrapped while we waited
            latest = await self._store.latest_snapshot()
            if latest is not None:
                return latest
            logger.info("No KPI snapshot stored yet; computing one")
            return await self.run_full_computation(policy=WAIT)

    async def get_snapshot(self, snapshot_id: str) -> KpiSnapshot:
        snapshot = await self._store.get_snapshot(snapshot_id)
        if snapshot is None:
            raise SnapshotNotFound(f"snapshot {snapshot_id} does not exist")
        return snapshot

    def _release(self, task: asyncio.Task[KpiSnapshot]) -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled() and task.exception() is not None:
            logger.warning("KPI computation failed: %s", task.exception())

    async def _fetch_accounting(self, period: ReportingPeriod) -> AccountingFacts:
        async def collect() -> AccountingFacts:
            cash, profit_loss, cogs, expenses = await asyncio.gather(
                self._accounting.get_cash_position(),
                self._accounting.get_profit_loss(period),
                self._accounting.get_cogs(period),
                self._accounting.get_expenses(period),
            )
            return AccountingFacts(cash=cash, profit_loss=profit_loss, cogs=cogs, expenses=expenses)

        return await call_adapter("accounting", collect(), self._settings.adapter_timeout_seconds)

    async def _fetch_commerce(self) -> CommerceFacts:
        inventory = await call_adapter(
            "commerce", self._commerce.get_inventory(), self._settings.adapter_timeout_seconds
        )
        return CommerceFacts(inventory=list(inventory))

    async def _compute(self, period: ReportingPeriod) -> KpiSnapshot:
        tracer = get_tracer()
        engine_metrics = get_engine_metrics()
        started = time.perf_counter()
        with tracer.start_as_current_span("kpi.run_full_computation") as span:
            span.set_attribute("kpi.period_start", period.start.isoformat())
            span.set_attribute("kpi.period_end", period.end.isoformat())

            previous = await self._store.latest_snapshot()
            prior_metrics: dict[MetricKey, Metric] = dict(previous.kpis) if previous else {}

            results: list[Any] = await asyncio.gather(
                self._fetch_accounting(period),
                self._fetch_commerce(),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException) and not isinstance(result, UpstreamUnavailable):
                    raise result
            accounting, commerce = results

            failures = [result for result in results if isinstance(result, UpstreamUnavailable)]
            if len(failures) == len(results) and previous is None:
                span.set_attribute("kpi.outcome", "upstream_unavailable")
                engine_metrics.record_computation("upstream_unavailable", time.perf_counter() - started)
                raise UpstreamUnavailable(
                    "all", "; ".join(failure.detail for failure in failures) + "; no prior snapshot"
                )

            kpis: dict[MetricKey, Metric] = {}
            fallback: list[MetricKey] = []

            if isinstance(accounting, AccountingFacts):
                kpis.update(derive_accounting_metrics(accounting, period, self._settings, prior_metrics))
            else:
                logger.warning("Accounting adapter degraded: %s", accounting.detail)
                carried = carry_forward(prior_metrics, ACCOUNTING_METRICS)
                kpis.update(carried)
                fallback.extend(carried)

            if isinstance(commerce, CommerceFacts):
                kpis.update(derive_commerce_metrics(commerce, self._settings, prior_metrics))
            else:
                logger.warning("Commerce adapter degraded: %s", commerce.detail)
                carried = carry_forward(prior_metrics, COMMERCE_METRICS)
                kpis.update(carried)
                fallback.extend(carried)

            alerts = classify_alerts(
                kpis,
                self._thresholds,
                inventory=commerce.inventory if isinstance(commerce, CommerceFacts) else None,
                revenue=(
                    accounting.profit_loss.total_revenue if isinstance(accounting, AccountingFacts) else None
                ),
            )

            snapshot = KpiSnapshot(
                id=str(uuid.uuid4()),
                date=self._clock(),
                period=ReportingPeriodSchema(start=period.start, end=period.end),
                kpis=kpis,
                alerts=tuple(alerts),
                data_source=DataSource(
                    accounting=isinstance(accounting, AccountingFacts),
                    commerce=isinstance(commerce, CommerceFacts),
                    fallback_metrics=tuple(fallback),
                ),
            )
            span.set_attribute("kpi.snapshot_id", snapshot.id)
            span.set_attribute("kpi.alert_count", len(alerts))

            try:
                await self._store.add_snapshot(snapshot)
            except PersistenceFailure:
                logger.exception("Failed to persist KPI snapshot %s", snapshot.id)
                span.set_attribute("kpi.persisted", False)
                engine_metrics.record_computation("unpersisted", time.perf_counter() - started, len(fallback))
                return snapshot.model_copy(
                    update={"data_source": snapshot.data_source.model_copy(update={"persisted": False})}
                )

            span.set_attribute("kpi.persisted", True)
            engine_metrics.record_computation("persisted", time.perf_counter() - started, len(fallback))
            logger.info(
                "Stored KPI snapshot %s (%d metrics, %d alerts, fallback=%s)",
                snapshot.id,
                len(kpis),
                len(alerts),
                [key.value for key in fallback],
            )
            return snapshot


__all__ = ["REJECT", "WAIT", "SnapshotManager", "call_adapter"]
