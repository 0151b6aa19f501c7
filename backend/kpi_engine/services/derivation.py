"""Metric derivation from upstream accounting and commerce facts.

Everything in this module is pure: facts in, ``Metric`` values out. Currency
amounts stay ``Decimal`` end to end and are quantized to cents; percentages are
clamped to ``[0, 100]`` with a zero denominator yielding ``0``. Formatting for
display is layered on top of the raw value, never in place of it.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, getcontext
from enum import Enum
from typing import Iterable, Mapping, Sequence

from kpi_engine.config import AppSettings
from kpi_engine.providers.facts import AccountingFacts, CommerceFacts, InventoryItem, ReportingPeriod
from kpi_engine.schemas.kpi import (
    Metric,
    MetricColor,
    MetricIcon,
    MetricKey,
    MetricUnit,
    Trend,
    TrendDirection,
)

getcontext().prec = 28

CENT = Decimal("0.01")
TENTH = Decimal("0.1")
ZERO = Decimal("0")
HUNDRED = Decimal("100")
DEAD_STOCK_WEEKS = Decimal("999")

ACCOUNTING_METRICS: tuple[MetricKey, ...] = (
    MetricKey.CASH_ON_HAND,
    MetricKey.DAYS_CASH_RUNWAY,
    MetricKey.GROSS_MARGIN,
    MetricKey.NET_INCOME,
)
COMMERCE_METRICS: tuple[MetricKey, ...] = (
    MetricKey.CASH_IMPACT,
    MetricKey.CLEARANCE_POTENTIAL,
    MetricKey.MARGIN_PROTECTION,
    MetricKey.Q4_READINESS,
)


class VelocityCategory(str, Enum):
    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"
    DEAD = "dead"


@dataclass(frozen=True)
class _Style:
    title: str
    unit: MetricUnit
    color: MetricColor
    icon: MetricIcon


_STYLES: dict[MetricKey, _Style] = {
    MetricKey.CASH_IMPACT: _Style("Top Cash Impact", MetricUnit.SCORE, MetricColor.BLUE, MetricIcon.BOLT),
    MetricKey.CLEARANCE_POTENTIAL: _Style(
        "Clearance Potential", MetricUnit.CURRENCY, MetricColor.GREEN, MetricIcon.MONEY
    ),
    MetricKey.MARGIN_PROTECTION: _Style(
        "Margin Protection", MetricUnit.CURRENCY, MetricColor.PURPLE, MetricIcon.SHIELD
    ),
    MetricKey.Q4_READINESS: _Style("Q4 Readiness", MetricUnit.PERCENT, MetricColor.RED, MetricIcon.HOLIDAY),
    MetricKey.CASH_ON_HAND: _Style("Cash on Hand", MetricUnit.CURRENCY, MetricColor.GREEN, MetricIcon.BANK),
    MetricKey.DAYS_CASH_RUNWAY: _Style("Cash Runway", MetricUnit.DAYS, MetricColor.AMBER, MetricIcon.CLOCK),
    MetricKey.GROSS_MARGIN: _Style("Gross Margin", MetricUnit.PERCENT, MetricColor.PURPLE, MetricIcon.CHART),
    MetricKey.NET_INCOME: _Style("Net Income", MetricUnit.CURRENCY, MetricColor.BLUE, MetricIcon.LEDGER),
}


# Numeric helpers

def to_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percentage(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Return ``numerator / denominator * 100`` clamped to ``[0, 100]``."""

    if denominator == 0:
        return ZERO
    raw = numerator / denominator * HUNDRED
    return min(HUNDRED, max(ZERO, raw)).quantize(TENTH, rounding=ROUND_HALF_UP)


def format_currency(value: Decimal) -> str:
    rounded = value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    sign = "-" if rounded < 0 else ""
    return f"{sign}${abs(rounded):,}"


def format_percent(value: Decimal) -> str:
    if value == value.to_integral_value():
        return f"{value.quantize(Decimal('1'))}%"
    return f"{value}%"


def format_value(value: Decimal, unit: MetricUnit) -> str:
    if unit is MetricUnit.CURRENCY:
        return format_currency(value)
    if unit is MetricUnit.PERCENT:
        return format_percent(value)
    if unit is MetricUnit.DAYS:
        return f"{value} days"
    return f"{value.quantize(Decimal('1'), rounding=ROUND_HALF_UP):,}"


# Inventory helpers

def classify_velocity(weekly_units: Decimal) -> VelocityCategory:
    if weekly_units >= 2:
        return VelocityCategory.FAST
    if weekly_units >= Decimal("0.5"):
        return VelocityCategory.MEDIUM
    if weekly_units > 0:
        return VelocityCategory.SLOW
    return VelocityCategory.DEAD


def weeks_of_stock(item: InventoryItem) -> Decimal:
    if item.weekly_sales_units > 0:
        return (Decimal(item.available_quantity) / item.weekly_sales_units).quantize(TENTH, rounding=ROUND_HALF_UP)
    if item.available_quantity > 0:
        return DEAD_STOCK_WEEKS
    return ZERO


def lost_sales_exposure(item: InventoryItem) -> Decimal:
    """Revenue at risk if the item stocks out before a reorder lands."""

    weeks_short = max(Decimal("4"), Decimal("8") - weeks_of_stock(item))
    return to_money(item.weekly_sales_units * item.price * weeks_short)


def cash_impact_score(item: InventoryItem) -> Decimal:
    """Dollar exposure of an item: lost sales for movers, tied-up cash for the rest."""

    velocity = classify_velocity(item.weekly_sales_units)
    if velocity in (VelocityCategory.FAST, VelocityCategory.MEDIUM):
        return lost_sales_exposure(item)
    return to_money(Decimal(max(item.available_quantity, 0)) * item.price)


def clearance_candidates(items: Iterable[InventoryItem]) -> list[InventoryItem]:
    return [
        item
        for item in items
        if item.available_quantity > 0
        and classify_velocity(item.weekly_sales_units) in (VelocityCategory.SLOW, VelocityCategory.DEAD)
    ]


def clearance_potential(items: Iterable[InventoryItem], recovery_rate: Decimal) -> tuple[Decimal, int]:
    candidates = clearance_candidates(items)
    total = sum((item.price * item.available_quantity * recovery_rate for item in candidates), ZERO)
    return to_money(total), len(candidates)


def margin_protection(items: Iterable[InventoryItem], min_margin: Decimal) -> tuple[Decimal, int]:
    protected = [
        item
        for item in items
        if item.profit_protection_threshold is not None and item.effective_margin >= min_margin
    ]
    total = sum(
        (
            (item.price - item.price * item.profit_protection_threshold / HUNDRED) * max(item.available_quantity, 0)
            for item in protected
        ),
        ZERO,
    )
    return to_money(total), len(protected)


def q4_readiness(items: Iterable[InventoryItem]) -> tuple[Decimal, int]:
    q4_items = [item for item in items if item.q4_item]
    in_stock = sum(1 for item in q4_items if item.available_quantity > 0)
    return percentage(Decimal(in_stock), Decimal(len(q4_items))), len(q4_items)


# Financial helpers

def gross_margin(revenue: Decimal, cogs: Decimal) -> Decimal:
    return percentage(revenue - cogs, revenue)


def days_cash_runway(cash: Decimal, period_expenses: Decimal, period_days: int, cap: Decimal) -> Decimal:
    if period_days <= 0 or period_expenses <= 0:
        return cap
    daily_burn = period_expenses / Decimal(period_days)
    runway = cash / daily_burn
    return min(cap, max(ZERO, runway)).quantize(TENTH, rounding=ROUND_HALF_UP)


# Metric assembly

def compute_trend(current: Decimal, previous: Decimal | None) -> Trend | None:
    if previous is None:
        return None
    change = current - previous
    if change > 0:
        direction = TrendDirection.UP
    elif change < 0:
        direction = TrendDirection.DOWN
    else:
        direction = TrendDirection.NEUTRAL
    if previous == 0:
        pct = ZERO if change == 0 else HUNDRED
    else:
        pct = (abs(change) / abs(previous) * HUNDRED).quantize(TENTH, rounding=ROUND_HALF_UP)
    return Trend(direction=direction, value=pct)


def build_metric(
    key: MetricKey,
    value: Decimal,
    *,
    subtitle: str = "",
    previous: Mapping[MetricKey, Metric] | None = None,
    display: str | None = None,
) -> Metric:
    style = _STYLES[key]
    prior = previous.get(key) if previous else None
    return Metric(
        key=key,
        title=style.title,
        value=value,
        display=display if display is not None else format_value(value, style.unit),
        unit=style.unit,
        subtitle=subtitle,
        trend=compute_trend(value, prior.value if prior is not None else None),
        color=style.color,
        icon=style.icon,
    )


def derive_accounting_metrics(
    facts: AccountingFacts,
    period: ReportingPeriod,
    settings: AppSettings,
    previous: Mapping[MetricKey, Metric] | None = None,
) -> dict[MetricKey, Metric]:
    cash = to_money(facts.cash.total_cash)
    runway = days_cash_runway(cash, facts.expenses.total_expenses, period.days, settings.runway_cap_days)
    margin = gross_margin(facts.profit_loss.total_revenue, facts.cogs.total_cogs)
    net_income = to_money(facts.profit_loss.net_income)
    return {
        MetricKey.CASH_ON_HAND: build_metric(
            MetricKey.CASH_ON_HAND,
            cash,
            subtitle=f"{len(facts.cash.bank_accounts)} bank accounts as of {facts.cash.as_of_date.isoformat()}",
            previous=previous,
        ),
        MetricKey.DAYS_CASH_RUNWAY: build_metric(
            MetricKey.DAYS_CASH_RUNWAY,
            runway,
            subtitle=f"Burn over {period.days} days",
            previous=previous,
        ),
        MetricKey.GROSS_MARGIN: build_metric(
            MetricKey.GROSS_MARGIN,
            margin,
            subtitle=f"Revenue {format_currency(facts.profit_loss.total_revenue)}",
            previous=previous,
        ),
        MetricKey.NET_INCOME: build_metric(
            MetricKey.NET_INCOME,
            net_income,
            subtitle=f"{period.start.isoformat()} to {period.end.isoformat()}",
            previous=previous,
        ),
    }


def derive_commerce_metrics(
    facts: CommerceFacts,
    settings: AppSettings,
    previous: Mapping[MetricKey, Metric] | None = None,
) -> dict[MetricKey, Metric]:
    items: Sequence[InventoryItem] = facts.inventory
    ranked = sorted(items, key=cash_impact_score, reverse=True)
    if ranked:
        top = ranked[0]
        top_score = cash_impact_score(top)
        impact = build_metric(
            MetricKey.CASH_IMPACT,
            top_score,
            subtitle=f"{top.title or top.sku} - Score: {format_value(top_score, MetricUnit.SCORE)}",
            previous=previous,
        )
    else:
        impact = build_metric(MetricKey.CASH_IMPACT, ZERO, subtitle="No inventory", previous=previous)

    clearance, clearance_count = clearance_potential(items, settings.clearance_recovery_rate)
    protected, protected_count = margin_protection(items, settings.margin_protection_min_margin)
    readiness, q4_count = q4_readiness(items)
    return {
        MetricKey.CASH_IMPACT: impact,
        MetricKey.CLEARANCE_POTENTIAL: build_metric(
            MetricKey.CLEARANCE_POTENTIAL,
            clearance,
            subtitle=f"{clearance_count} items ready",
            previous=previous,
        ),
        MetricKey.MARGIN_PROTECTION: build_metric(
            MetricKey.MARGIN_PROTECTION,
            protected,
            subtitle=f"{protected_count} items protected",
            previous=previous,
        ),
        MetricKey.Q4_READINESS: build_metric(
            MetricKey.Q4_READINESS,
            readiness,
            subtitle=f"{q4_count} holiday items",
            previous=previous,
        ),
    }


def carry_forward(metrics: Mapping[MetricKey, Metric], keys: Iterable[MetricKey]) -> dict[MetricKey, Metric]:
    """Copy the last known value of each key, marked stale."""

    carried: dict[MetricKey, Metric] = {}
    for key in keys:
        metric = metrics.get(key)
        if metric is not None:
            carried[key] = metric.model_copy(update={"stale": True})
    return carried


__all__ = [
    "ACCOUNTING_METRICS",
    "COMMERCE_METRICS",
    "VelocityCategory",
    "build_metric",
    "carry_forward",
    "cash_impact_score",
    "classify_velocity",
    "clearance_candidates",
    "clearance_potential",
    "compute_trend",
    "days_cash_runway",
    "derive_accounting_metrics",
    "derive_commerce_metrics",
    "format_currency",
    "format_percent",
    "gross_margin",
    "lost_sales_exposure",
    "margin_protection",
    "percentage",
    "q4_readiness",
    "to_money",
    "weeks_of_stock",
]
