"""Typed facts returned by the upstream accounting and commerce adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Sequence


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Coerce an upstream number (often a string) into a Decimal."""

    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


@dataclass(frozen=True)
class ReportingPeriod:
    """Inclusive date range for period-bound accounting queries."""

    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class BankAccount:
    name: str
    balance: Decimal
    account_type: str


@dataclass(frozen=True)
class CashPosition:
    total_cash: Decimal
    bank_accounts: Sequence[BankAccount]
    as_of_date: date
    pending_payables: Decimal | None = None


@dataclass(frozen=True)
class ProfitLoss:
    total_revenue: Decimal
    total_expenses: Decimal
    net_income: Decimal
    gross_profit: Decimal
    period_start: date
    period_end: date


@dataclass(frozen=True)
class LedgerLine:
    name: str
    amount: Decimal


@dataclass(frozen=True)
class CogsReport:
    total_cogs: Decimal
    cogs_accounts: Sequence[LedgerLine]
    period_start: date
    period_end: date


@dataclass(frozen=True)
class ExpenseReport:
    total_expenses: Decimal
    expense_categories: Sequence[LedgerLine]
    period_start: date
    period_end: date


@dataclass(frozen=True)
class InventoryItem:
    sku: str
    title: str
    price: Decimal
    cost: Decimal
    available_quantity: int
    weekly_sales_units: Decimal = Decimal("0")
    margin_percentage: Decimal | None = None
    profit_protection_threshold: Decimal | None = None
    q4_item: bool = False
    reorder_point: int | None = None

    @property
    def effective_margin(self) -> Decimal:
        if self.margin_percentage is not None:
            return self.margin_percentage
        if self.price <= 0:
            return Decimal("0")
        return (self.price - self.cost) / self.price * Decimal("100")


@dataclass(frozen=True)
class AccountingFacts:
    cash: CashPosition
    profit_loss: ProfitLoss
    cogs: CogsReport
    expenses: ExpenseReport


@dataclass(frozen=True)
class CommerceFacts:
    inventory: Sequence[InventoryItem] = field(default_factory=tuple)


def parse_inventory_item(payload: Mapping[str, Any]) -> InventoryItem:
    """Normalise one inventory payload from the commerce bridge."""

    margin = payload.get("margin_percentage")
    threshold = payload.get("profit_protection_threshold")
    reorder = payload.get("reorder_point")
    return InventoryItem(
        sku=str(payload.get("sku") or ""),
        title=str(payload.get("title") or payload.get("sku") or ""),
        price=to_decimal(payload.get("price")),
        cost=to_decimal(payload.get("cost")),
        available_quantity=int(payload.get("available_quantity") or 0),
        weekly_sales_units=to_decimal(payload.get("weekly_sales_units")),
        margin_percentage=to_decimal(margin) if margin is not None else None,
        profit_protection_threshold=to_decimal(threshold) if threshold is not None else None,
        q4_item=bool(payload.get("q4_item", False)),
        reorder_point=int(reorder) if reorder is not None else None,
    )


__all__ = [
    "AccountingFacts",
    "BankAccount",
    "CashPosition",
    "CogsReport",
    "CommerceFacts",
    "ExpenseReport",
    "InventoryItem",
    "LedgerLine",
    "ProfitLoss",
    "ReportingPeriod",
    "parse_inventory_item",
    "to_decimal",
]
