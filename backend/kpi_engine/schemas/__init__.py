"""Pydantic schema exports."""

from .cash import (
    AffordabilityCheck,
    AffordabilityRecommendation,
    AffordabilityRequest,
    BatchAffordabilityCheck,
    BatchRecommendation,
    CashAdequacy,
    CashBalanceData,
    CashImpactSummary,
    CashStatus,
    CashSyncResult,
)
from .health import HealthResponse
from .kpi import (
    Alert,
    AlertType,
    ComputationRequest,
    DataSource,
    KpiSnapshot,
    Metric,
    MetricColor,
    MetricIcon,
    MetricKey,
    MetricUnit,
    ReportingPeriodSchema,
    Trend,
    TrendDirection,
)

__all__ = [
    "AffordabilityCheck",
    "AffordabilityRecommendation",
    "AffordabilityRequest",
    "Alert",
    "AlertType",
    "BatchAffordabilityCheck",
    "BatchRecommendation",
    "CashAdequacy",
    "CashBalanceData",
    "CashImpactSummary",
    "CashStatus",
    "CashSyncResult",
    "ComputationRequest",
    "DataSource",
    "HealthResponse",
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
