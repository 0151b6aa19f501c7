"""Append-only KPI snapshot and cash status history tables."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import JSON, Date, DateTime, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from kpi_engine.db.base import Base


class KpiSnapshotRecord(Base):
    __tablename__ = "kpi_snapshot"
    __table_args__ = (Index("ix_kpi_snapshot_created_at", "created_at"),)

    row_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    snapshot_id: Mapped[str] = mapped_column(String(36), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    period_start: Mapped[date] = mapped_column(Date)
    period_end: Mapped[date] = mapped_column(Date)
    kpis: Mapped[dict] = mapped_column(JSON)
    alerts: Mapped[list] = mapped_column(JSON)
    data_source: Mapped[dict] = mapped_column(JSON)


class CashStatusRecord(Base):
    __tablename__ = "cash_status"
    __table_args__ = (Index("ix_cash_status_last_updated", "last_updated"),)

    row_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    status_id: Mapped[str] = mapped_column(String(36), unique=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    available: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    pending_payables: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    status: Mapped[str] = mapped_column(String(16))


__all__ = ["KpiSnapshotRecord", "CashStatusRecord"]
