"""Alert classification for derived KPI metrics."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

from kpi_engine.config import AppSettings
from kpi_engine.providers.facts import InventoryItem
from kpi_engine.schemas.kpi import Alert, AlertType, Metric, MetricKey

from .derivation import (
    HUNDRED,
    ZERO,
    VelocityCategory,
    classify_velocity,
    format_currency,
    format_percent,
    lost_sales_exposure,
    to_money,
    weeks_of_stock,
)


@dataclass(frozen=True)
class AlertThresholds:
    reorder_weeks_of_stock: Decimal = Decimal("4")
    minimum_operating_cash: Decimal = Decimal("10000")
    cash_balance_warning: Decimal = Decimal("15000")
    cash_runway_critical_days: Decimal = Decimal("14")
    cash_runway_warning_days: Decimal = Decimal("21")
    cash_runway_positive_days: Decimal = Decimal("30")
    gross_margin_critical_pct: Decimal = Decimal("48")
    gross_margin_warning_pct: Decimal = Decimal("52")
    gross_margin_positive_pct: Decimal = Decimal("58")
    clearance_opportunity_threshold: Decimal = Decimal("10000")
    target_item_margin_pct: Decimal = Decimal("60")
    max_margin_performer_alerts: int = 5

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "AlertThresholds":
        return cls(
            reorder_weeks_of_stock=settings.reorder_weeks_of_stock,
            minimum_operating_cash=settings.minimum_operating_cash,
            cash_balance_warning=settings.cash_balance_warning,
            cash_runway_critical_days=settings.cash_runway_critical_days,
            cash_runway_warning_days=settings.cash_runway_warning_days,
            cash_runway_positive_days=settings.cash_runway_positive_days,
            gross_margin_critical_pct=settings.gross_margin_critical_pct,
            gross_margin_warning_pct=settings.gross_margin_warning_pct,
            gross_margin_positive_pct=settings.gross_margin_positive_pct,
            clearance_opportunity_threshold=settings.clearance_opportunity_threshold,
            target_item_margin_pct=settings.target_item_margin_pct,
            max_margin_performer_alerts=settings.max_margin_performer_alerts,
        )


@dataclass(frozen=True)
class AlertCandidate:
    """A triggered rule before priorities are assigned."""

    id: str
    type: AlertType
    message: str
    impact: Decimal
    action: str | None = None


def order_alerts(alerts: Iterable[Alert]) -> list[Alert]:
    """Sort by priority, then severity, then insertion order."""

    indexed = list(enumerate(alerts))
    indexed.sort(key=lambda pair: (pair[1].priority, pair[1].type.severity, pair[0]))
    return [alert for _, alert in indexed]


def assign_priorities(candidates: Sequence[AlertCandidate]) -> list[Alert]:
    """Rank candidates into consecutive priorities starting at 1.

    Critical outranks warning outranks positive; within a type the larger
    dollar impact gets the lower (more urgent) priority.
    """

    ranked = sorted(
        enumerate(candidates),
        key=lambda pair: (pair[1].type.severity, -pair[1].impact, pair[0]),
    )
    return [
        Alert(
            id=candidate.id,
            type=candidate.type,
            priority=rank,
            message=candidate.message,
            value=to_money(candidate.impact),
            action=candidate.action,
        )
        for rank, (_, candidate) in enumerate(ranked, start=1)
    ]


def _value(metrics: Mapping[MetricKey, Metric], key: MetricKey) -> Decimal | None:
    metric = metrics.get(key)
    return metric.value if metric is not None else None


def _needs_reorder(item: InventoryItem, thresholds: AlertThresholds) -> bool:
    if item.reorder_point is not None and item.available_quantity <= item.reorder_point:
        return True
    velocity = classify_velocity(item.weekly_sales_units)
    return velocity in (VelocityCategory.FAST, VelocityCategory.MEDIUM) and (
        weeks_of_stock(item) <= thresholds.reorder_weeks_of_stock
    )


def _inventory_candidates(items: Sequence[InventoryItem], thresholds: AlertThresholds) -> list[AlertCandidate]:
    candidates: list[AlertCandidate] = []
    for item in items:
        if not _needs_reorder(item, thresholds):
            continue
        weeks = weeks_of_stock(item)
        reorder_units = (item.weekly_sales_units * 8).to_integral_value()
        candidates.append(
            AlertCandidate(
                id=f"reorder_{item.sku}",
                type=AlertType.CRITICAL,
                message=(
                    f"Critical reorder: {item.title or item.sku} has {item.available_quantity} units "
                    f"left ({weeks} weeks of stock)"
                ),
                impact=lost_sales_exposure(item),
                action=f"Reorder {reorder_units} units of {item.sku}",
            )
        )

    performers = [
        item
        for item in items
        if item.available_quantity > 0 and item.effective_margin > thresholds.target_item_margin_pct
    ]
    performers.sort(key=lambda item: (item.price - item.cost) * item.available_quantity, reverse=True)
    for item in performers[: thresholds.max_margin_performer_alerts]:
        candidates.append(
            AlertCandidate(
                id=f"margin_performer_{item.sku}",
                type=AlertType.POSITIVE,
                message=(
                    f"Margin performer: {item.title or item.sku} at "
                    f"{format_percent(item.effective_margin.quantize(Decimal('0.1')))} margin"
                ),
                impact=(item.price - item.cost) * item.available_quantity,
                action="Hold price; avoid discounting",
            )
        )
    return candidates


def _cash_candidates(metrics: Mapping[MetricKey, Metric], thresholds: AlertThresholds) -> list[AlertCandidate]:
    candidates: list[AlertCandidate] = []
    cash = _value(metrics, MetricKey.CASH_ON_HAND)
    if cash is not None and cash < thresholds.minimum_operating_cash:
        candidates.append(
            AlertCandidate(
                id="cash_balance_critical",
                type=AlertType.CRITICAL,
                message=(
                    f"Cash balance ({format_currency(cash)}) below minimum operating cash "
                    f"({format_currency(thresholds.minimum_operating_cash)})"
                ),
                impact=thresholds.minimum_operating_cash - cash,
                action="Defer discretionary spend and accelerate receivables",
            )
        )
    elif cash is not None and cash < thresholds.cash_balance_warning:
        candidates.append(
            AlertCandidate(
                id="cash_balance_warning",
                type=AlertType.WARNING,
                message=(
                    f"Cash balance ({format_currency(cash)}) below comfort zone "
                    f"({format_currency(thresholds.cash_balance_warning)})"
                ),
                impact=thresholds.cash_balance_warning - cash,
            )
        )

    runway = _value(metrics, MetricKey.DAYS_CASH_RUNWAY)
    if runway is None or cash is None:
        return candidates
    daily_burn = cash / runway if runway > 0 else ZERO
    if runway < thresholds.cash_runway_critical_days:
        candidates.append(
            AlertCandidate(
                id="cash_runway_critical",
                type=AlertType.CRITICAL,
                message=f"Only {runway} days of cash remaining",
                impact=(thresholds.cash_runway_critical_days - runway) * daily_burn,
                action="Emergency cash conservation measures required",
            )
        )
    elif runway < thresholds.cash_runway_warning_days:
        candidates.append(
            AlertCandidate(
                id="cash_runway_warning",
                type=AlertType.WARNING,
                message=(
                    f"Cash runway ({runway} days) below comfort zone "
                    f"({thresholds.cash_runway_warning_days} days)"
                ),
                impact=(thresholds.cash_runway_warning_days - runway) * daily_burn,
            )
        )
    elif runway > thresholds.cash_runway_positive_days:
        candidates.append(
            AlertCandidate(
                id="cash_runway_positive",
                type=AlertType.POSITIVE,
                message=f"Cash runway ({runway} days) provides strong financial security",
                impact=(runway - thresholds.cash_runway_positive_days) * daily_burn,
            )
        )
    return candidates


def _margin_candidates(
    metrics: Mapping[MetricKey, Metric],
    thresholds: AlertThresholds,
    revenue: Decimal | None,
) -> list[AlertCandidate]:
    margin = _value(metrics, MetricKey.GROSS_MARGIN)
    if margin is None:
        return []
    base = revenue if revenue is not None else ZERO
    if margin < thresholds.gross_margin_critical_pct:
        return [
            AlertCandidate(
                id="gross_margin_critical",
                type=AlertType.CRITICAL,
                message=(
                    f"Gross margin ({format_percent(margin)}) below minimum "
                    f"({format_percent(thresholds.gross_margin_critical_pct)})"
                ),
                impact=(thresholds.gross_margin_critical_pct - margin) / HUNDRED * base,
                action="Review pricing and supplier costs",
            )
        ]
    if margin < thresholds.gross_margin_warning_pct:
        return [
            AlertCandidate(
                id="gross_margin_warning",
                type=AlertType.WARNING,
                message=(
                    f"Gross margin ({format_percent(margin)}) below target "
                    f"({format_percent(thresholds.gross_margin_warning_pct)})"
                ),
                impact=(thresholds.gross_margin_warning_pct - margin) / HUNDRED * base,
            )
        ]
    if margin > thresholds.gross_margin_positive_pct:
        return [
            AlertCandidate(
                id="gross_margin_positive",
                type=AlertType.POSITIVE,
                message=(
                    f"Gross margin ({format_percent(margin)}) exceeds target "
                    f"({format_percent(thresholds.gross_margin_positive_pct)})"
                ),
                impact=(margin - thresholds.gross_margin_positive_pct) / HUNDRED * base,
            )
        ]
    return []


def _clearance_candidates(metrics: Mapping[MetricKey, Metric], thresholds: AlertThresholds) -> list[AlertCandidate]:
    clearance = _value(metrics, MetricKey.CLEARANCE_POTENTIAL)
    if clearance is None or clearance <= thresholds.clearance_opportunity_threshold:
        return []
    return [
        AlertCandidate(
            id="clearance_opportunity",
            type=AlertType.WARNING,
            message=f"Clearance opportunity: {format_currency(clearance)} recoverable from slow-moving stock",
            impact=clearance,
            action="Apply clearance pricing to slow and dead stock",
        )
    ]


def classify_alerts(
    metrics: Mapping[MetricKey, Metric],
    thresholds: AlertThresholds,
    *,
    inventory: Sequence[InventoryItem] | None = None,
    revenue: Decimal | None = None,
) -> list[Alert]:
    """Evaluate every rule and return prioritized alerts.

    ``inventory`` is only supplied when commerce facts are fresh; item level
    rules are skipped otherwise. An empty list is a valid result.
    """

    candidates: list[AlertCandidate] = []
    if inventory is not None:
        candidates.extend(_inventory_candidates(inventory, thresholds))
    candidates.extend(_cash_candidates(metrics, thresholds))
    candidates.extend(_clearance_candidates(metrics, thresholds))
    candidates.extend(_margin_candidates(metrics, thresholds, revenue))
    return order_alerts(assign_priorities(candidates))


__all__ = [
    "AlertCandidate",
    "AlertThresholds",
    "assign_priorities",
    "classify_alerts",
    "order_alerts",
]
