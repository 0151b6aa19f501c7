"""Pydantic schemas for KPI metrics, alerts and snapshots."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MetricKey(str, Enum):
    CASH_IMPACT = "cash_impact"
    CLEARANCE_POTENTIAL = "clearance_potential"
    MARGIN_PROTECTION = "margin_protection"
    Q4_READINESS = "q4_readiness"
    CASH_ON_HAND = "cash_on_hand"
    DAYS_CASH_RUNWAY = "days_cash_runway"
    GROSS_MARGIN = "gross_margin"
    NET_INCOME = "net_income"


class MetricUnit(str, Enum):
    CURRENCY = "currency"
    PERCENT = "percent"
    DAYS = "days"
    SCORE = "score"


class MetricColor(str, Enum):
    BLUE = "blue"
    GREEN = "green"
    PURPLE = "purple"
    RED = "red"
    AMBER = "amber"


class MetricIcon(str, Enum):
    BOLT = "bolt"
    MONEY = "money"
    SHIELD = "shield"
    HOLIDAY = "holiday"
    BANK = "bank"
    CLOCK = "clock"
    CHART = "chart"
    LEDGER = "ledger"


class TrendDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


class AlertType(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    POSITIVE = "positive"

    @property
    def severity(self) -> int:
        """Urgency rank, lower is more urgent."""

        return _ALERT_SEVERITY[self]


_ALERT_SEVERITY = {AlertType.CRITICAL: 0, AlertType.WARNING: 1, AlertType.POSITIVE: 2}


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class Trend(_Frozen):
    direction: TrendDirection
    value: Decimal = Field(..., description="Percentage change against the previous snapshot.")
    label: str = "vs last snapshot"


class Metric(_Frozen):
    key: MetricKey
    title: str
    value: Decimal = Field(..., description="Raw magnitude before display formatting.")
    display: str
    unit: MetricUnit
    subtitle: str = ""
    trend: Trend | None = None
    color: MetricColor
    icon: MetricIcon
    stale: bool = False


class Alert(_Frozen):
    id: str
    type: AlertType
    priority: int = Field(..., ge=1)
    message: str
    value: Decimal | None = None
    action: str | None = None


class DataSource(_Frozen):
    accounting: bool
    commerce: bool
    fallback_metrics: tuple[MetricKey, ...] = ()
    persisted: bool = True


class ReportingPeriodSchema(_Frozen):
    start: date
    end: date


class KpiSnapshot(_Frozen):
    id: str
    date: datetime
    period: ReportingPeriodSchema
    kpis: dict[MetricKey, Metric]
    alerts: tuple[Alert, ...] = ()
    data_source: DataSource

    @model_validator(mode="after")
    def _alerts_are_ordered(self) -> "KpiSnapshot":
        priorities = [alert.priority for alert in self.alerts]
        if priorities != sorted(priorities):
            raise ValueError("alerts must be ordered by ascending priority")
        return self

    def metric_value(self, key: MetricKey) -> Decimal | None:
        metric = self.kpis.get(key)
        return metric.value if metric is not None else None


class ComputationRequest(BaseModel):
    start: date | None = None
    end: date | None = None
    require_durable: bool = False
    policy: str | None = Field(default=None, pattern="^(WAIT|REJECT)$")


__all__ = [
    "Alert",
    "AlertType",
    "ComputationRequest",
    "DataSource",
    "KpiSnapshot",
    "Metric",
    "MetricColor",
    "MetricIcon",
    "MetricKey",
    "MetricUnit",
    "ReportingPeriodSchema",
    "Trend",
    "TrendDirection",
]
