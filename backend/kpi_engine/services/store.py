"""Persistence for KPI snapshots and cash status history.

Both tables are append-only: every computation or cash sync inserts a new row
inside a single transaction, so readers never observe a partial record.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError

from kpi_engine.core.errors import PersistenceFailure
from kpi_engine.db.database import Database
from kpi_engine.models import CashStatusRecord, KpiSnapshotRecord
from kpi_engine.schemas.cash import CashAdequacy, CashStatus
from kpi_engine.schemas.kpi import KpiSnapshot


class SnapshotStore(Protocol):
    async def add_snapshot(self, snapshot: KpiSnapshot) -> None:
        ...

    async def latest_snapshot(self) -> KpiSnapshot | None:
        ...

    async def get_snapshot(self, snapshot_id: str) -> KpiSnapshot | None:
        ...

    async def count_snapshots(self) -> int:
        ...

    async def add_cash_status(self, status: CashStatus) -> None:
        ...

    async def latest_cash_status(self) -> CashStatus | None:
        ...

    async def recent_cash_statuses(self, limit: int) -> list[CashStatus]:
        """Newest first."""
        ...


class InMemorySnapshotStore:
    """Process-local store used by tests and mock-data runs."""

    def __init__(self) -> None:
        self._snapshots: list[KpiSnapshot] = []
        self._cash: list[CashStatus] = []

    async def add_snapshot(self, snapshot: KpiSnapshot) -> None:
        self._snapshots.append(snapshot)

    async def latest_snapshot(self) -> KpiSnapshot | None:
        if not self._snapshots:
            return None
        # max() keeps the first maximum, so walk newest insert first
        return max(reversed(self._snapshots), key=lambda snap: snap.date)

    async def get_snapshot(self, snapshot_id: str) -> KpiSnapshot | None:
        return next((snap for snap in self._snapshots if snap.id == snapshot_id), None)

    async def count_snapshots(self) -> int:
        return len(self._snapshots)

    async def add_cash_status(self, status: CashStatus) -> None:
        self._cash.append(status)

    async def latest_cash_status(self) -> CashStatus | None:
        recent = await self.recent_cash_statuses(1)
        return recent[0] if recent else None

    async def recent_cash_statuses(self, limit: int) -> list[CashStatus]:
        ordered = sorted(
            enumerate(self._cash),
            key=lambda pair: (pair[1].last_updated, pair[0]),
            reverse=True,
        )
        return [status for _, status in ordered[:limit]]


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _snapshot_from_record(record: KpiSnapshotRecord) -> KpiSnapshot:
    return KpiSnapshot.model_validate(
        {
            "id": record.snapshot_id,
            "date": _aware(record.created_at),
            "period": {"start": record.period_start, "end": record.period_end},
            "kpis": record.kpis,
            "alerts": record.alerts,
            "data_source": record.data_source,
        }
    )


def _cash_from_record(record: CashStatusRecord) -> CashStatus:
    return CashStatus(
        id=record.status_id,
        available=record.available,
        pending_payables=record.pending_payables,
        last_updated=_aware(record.last_updated),
        status=CashAdequacy(record.status),
    )


class SqlSnapshotStore:
    """SQLAlchemy backed store; each write is one row in one transaction."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def add_snapshot(self, snapshot: KpiSnapshot) -> None:
        payload = snapshot.model_dump(mode="json")
        record = KpiSnapshotRecord(
            snapshot_id=snapshot.id,
            created_at=snapshot.date,
            period_start=snapshot.period.start,
            period_end=snapshot.period.end,
            kpis=payload["kpis"],
            alerts=payload["alerts"],
            data_source=payload["data_source"],
        )
        try:
            async with self._database.session() as session:
                async with session.begin():
                    session.add(record)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"failed to persist snapshot {snapshot.id}: {exc}") from exc

    async def _scalars(self, statement: Select) -> list:
        try:
            async with self._database.session() as session:
                result = await session.execute(statement)
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"store read failed: {exc}") from exc

    async def latest_snapshot(self) -> KpiSnapshot | None:
        records = await self._scalars(
            select(KpiSnapshotRecord)
            .order_by(KpiSnapshotRecord.created_at.desc(), KpiSnapshotRecord.row_id.desc())
            .limit(1)
        )
        return _snapshot_from_record(records[0]) if records else None

    async def get_snapshot(self, snapshot_id: str) -> KpiSnapshot | None:
        records = await self._scalars(
            select(KpiSnapshotRecord).where(KpiSnapshotRecord.snapshot_id == snapshot_id)
        )
        return _snapshot_from_record(records[0]) if records else None

    async def count_snapshots(self) -> int:
        counts = await self._scalars(select(func.count()).select_from(KpiSnapshotRecord))
        return int(counts[0])

    async def add_cash_status(self, status: CashStatus) -> None:
        record = CashStatusRecord(
            status_id=status.id,
            last_updated=status.last_updated,
            available=status.available,
            pending_payables=status.pending_payables,
            status=status.status.value,
        )
        try:
            async with self._database.session() as session:
                async with session.begin():
                    session.add(record)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"failed to persist cash status {status.id}: {exc}") from exc

    async def latest_cash_status(self) -> CashStatus | None:
        recent = await self.recent_cash_statuses(1)
        return recent[0] if recent else None

    async def recent_cash_statuses(self, limit: int) -> list[CashStatus]:
        records = await self._scalars(
            select(CashStatusRecord)
            .order_by(CashStatusRecord.last_updated.desc(), CashStatusRecord.row_id.desc())
            .limit(limit)
        )
        return [_cash_from_record(record) for record in records]


__all__ = ["InMemorySnapshotStore", "SnapshotStore", "SqlSnapshotStore"]
