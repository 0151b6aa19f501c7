"""Database model exports."""

from .snapshot import CashStatusRecord, KpiSnapshotRecord

__all__ = ["CashStatusRecord", "KpiSnapshotRecord"]
