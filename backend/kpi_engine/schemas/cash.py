"""Pydantic schemas for cash adequacy tracking."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .kpi import TrendDirection


class CashAdequacy(str, Enum):
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    HEALTHY = "HEALTHY"


class AffordabilityRecommendation(str, Enum):
    APPROVED_TO_ORDER = "APPROVED_TO_ORDER"
    REVIEW_CASH_FLOW = "REVIEW_CASH_FLOW"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"


class BatchRecommendation(str, Enum):
    ALL_ORDERS_APPROVED = "ALL_ORDERS_APPROVED"
    PARTIAL_APPROVAL = "PARTIAL_APPROVAL"
    NO_ORDERS_APPROVED = "NO_ORDERS_APPROVED"


class CashStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    available: Decimal
    pending_payables: Decimal
    last_updated: datetime
    status: CashAdequacy

    @property
    def net_cash(self) -> Decimal:
        return self.available - self.pending_payables


class CashBalanceData(BaseModel):
    model_config = ConfigDict(frozen=True)

    available: Decimal
    pending_payables: Decimal
    payables_estimated: bool
    as_of: datetime


class CashSyncResult(BaseModel):
    cash_data: CashBalanceData
    status: CashStatus


class CashImpactSummary(BaseModel):
    current: CashStatus | None = None
    net_cash: Decimal = Decimal("0")
    records_considered: int = 0
    available_change: Decimal = Decimal("0")
    trend: TrendDirection = TrendDirection.NEUTRAL
    status_counts: dict[CashAdequacy, int] = Field(default_factory=dict)
    clearance_recovery_potential: Decimal = Decimal("0")
    critical_reorder_exposure: Decimal = Decimal("0")
    can_cover_critical_orders: bool = False


class AffordabilityRequest(BaseModel):
    order_value: Decimal = Field(..., gt=0)
    description: str | None = None


class AffordabilityCheck(BaseModel):
    order_value: Decimal
    can_afford: bool
    reason: str
    net_cash_after: Decimal
    recommendation: AffordabilityRecommendation
    status: CashStatus


class BatchAffordabilityCheck(BaseModel):
    total_orders: int
    total_value: Decimal
    total_affordable: Decimal
    affordable_count: int
    can_afford_all: bool
    orders: list[AffordabilityCheck]
    recommendation: BatchRecommendation
    status: CashStatus


__all__ = [
    "AffordabilityCheck",
    "AffordabilityRecommendation",
    "AffordabilityRequest",
    "BatchAffordabilityCheck",
    "BatchRecommendation",
    "CashAdequacy",
    "CashBalanceData",
    "CashImpactSummary",
    "CashStatus",
    "CashSyncResult",
]
