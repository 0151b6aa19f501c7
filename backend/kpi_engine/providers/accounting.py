"""Accounting platform adapter."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Protocol

from .bridge import BridgeClient, BridgeError
from .facts import (
    BankAccount,
    CashPosition,
    CogsReport,
    ExpenseReport,
    LedgerLine,
    ProfitLoss,
    ReportingPeriod,
    to_decimal,
)


class AccountingServiceError(BridgeError):
    """Raised when the accounting bridge fails."""


class AccountingClient(Protocol):
    """Read-only view of the accounting ledger."""

    async def get_cash_position(self) -> CashPosition:
        ...

    async def get_profit_loss(self, period: ReportingPeriod) -> ProfitLoss:
        ...

    async def get_cogs(self, period: ReportingPeriod) -> CogsReport:
        ...

    async def get_expenses(self, period: ReportingPeriod) -> ExpenseReport:
        ...

    async def test_connection(self) -> bool:
        ...


def _period_params(period: ReportingPeriod) -> dict[str, str]:
    return {"start_date": period.start.isoformat(), "end_date": period.end.isoformat()}


def _parse_date(value: Any, default: date) -> date:
    if not value:
        return default
    return date.fromisoformat(str(value)[:10])


def _ledger_lines(rows: Any, name_key: str = "name") -> list[LedgerLine]:
    lines: list[LedgerLine] = []
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        lines.append(LedgerLine(name=str(row.get(name_key) or ""), amount=to_decimal(row.get("amount"))))
    return lines


class HttpAccountingClient(BridgeClient):
    """Accounting adapter backed by the ledger bridge service."""

    error_class = AccountingServiceError
    service_name = "accounting"

    async def get_cash_position(self) -> CashPosition:
        path = "/cash-position"
        payload = await self._get_object(path)
        with self._parsing(path):
            accounts = [
                BankAccount(
                    name=str(row.get("name") or ""),
                    balance=to_decimal(row.get("balance")),
                    account_type=str(row.get("account_type") or row.get("accountType") or "Bank"),
                )
                for row in payload.get("bank_accounts") or []
                if isinstance(row, dict)
            ]
            total = payload.get("total_cash")
            payables = payload.get("pending_payables")
            return CashPosition(
                total_cash=(
                    to_decimal(total) if total is not None else sum((a.balance for a in accounts), Decimal("0"))
                ),
                bank_accounts=accounts,
                as_of_date=_parse_date(payload.get("as_of_date"), date.today()),
                pending_payables=to_decimal(payables) if payables is not None else None,
            )

    async def get_profit_loss(self, period: ReportingPeriod) -> ProfitLoss:
        path = "/reports/profit-loss"
        payload = await self._get_object(path, params=_period_params(period))
        with self._parsing(path):
            revenue = to_decimal(payload.get("total_revenue"))
            expenses = to_decimal(payload.get("total_expenses"))
            net_income = payload.get("net_income")
            return ProfitLoss(
                total_revenue=revenue,
                total_expenses=expenses,
                net_income=to_decimal(net_income) if net_income is not None else revenue - expenses,
                gross_profit=to_decimal(payload.get("gross_profit")),
                period_start=_parse_date(payload.get("period_start"), period.start),
                period_end=_parse_date(payload.get("period_end"), period.end),
            )

    async def get_cogs(self, period: ReportingPeriod) -> CogsReport:
        path = "/reports/cogs"
        payload = await self._get_object(path, params=_period_params(period))
        with self._parsing(path):
            return CogsReport(
                total_cogs=to_decimal(payload.get("total_cogs")),
                cogs_accounts=_ledger_lines(payload.get("cogs_accounts")),
                period_start=_parse_date(payload.get("period_start"), period.start),
                period_end=_parse_date(payload.get("period_end"), period.end),
            )

    async def get_expenses(self, period: ReportingPeriod) -> ExpenseReport:
        path = "/reports/expenses"
        payload = await self._get_object(path, params=_period_params(period))
        with self._parsing(path):
            return ExpenseReport(
                total_expenses=to_decimal(payload.get("total_expenses")),
                expense_categories=_ledger_lines(payload.get("expense_categories"), name_key="category"),
                period_start=_parse_date(payload.get("period_start"), period.start),
                period_end=_parse_date(payload.get("period_end"), period.end),
            )


class StaticAccountingClient:
    """Fixed ledger figures for demos and local development."""

    def __init__(
        self,
        *,
        total_cash: Decimal = Decimal("45000"),
        pending_payables: Decimal | None = None,
        total_revenue: Decimal = Decimal("25000"),
        total_expenses: Decimal = Decimal("18000"),
        total_cogs: Decimal = Decimal("10000"),
        period_expenses: Decimal = Decimal("18000"),
    ) -> None:
        self.total_cash = total_cash
        self.pending_payables = pending_payables
        self.total_revenue = total_revenue
        self.total_expenses = total_expenses
        self.total_cogs = total_cogs
        self.period_expenses = period_expenses

    async def get_cash_position(self) -> CashPosition:
        checking = (self.total_cash * Decimal("0.78")).quantize(Decimal("0.01"))
        return CashPosition(
            total_cash=self.total_cash,
            bank_accounts=[
                BankAccount(name="Main Checking", balance=checking, account_type="Checking"),
                BankAccount(name="Savings", balance=self.total_cash - checking, account_type="Savings"),
            ],
            as_of_date=date.today(),
            pending_payables=self.pending_payables,
        )

    async def get_profit_loss(self, period: ReportingPeriod) -> ProfitLoss:
        return ProfitLoss(
            total_revenue=self.total_revenue,
            total_expenses=self.total_expenses,
            net_income=self.total_revenue - self.total_expenses,
            gross_profit=self.total_revenue - self.total_cogs,
            period_start=period.start,
            period_end=period.end,
        )

    async def get_cogs(self, period: ReportingPeriod) -> CogsReport:
        shipping = (self.total_cogs * Decimal("0.2")).quantize(Decimal("0.01"))
        return CogsReport(
            total_cogs=self.total_cogs,
            cogs_accounts=[
                LedgerLine(name="Product Costs", amount=self.total_cogs - shipping),
                LedgerLine(name="Shipping Costs", amount=shipping),
            ],
            period_start=period.start,
            period_end=period.end,
        )

    async def get_expenses(self, period: ReportingPeriod) -> ExpenseReport:
        return ExpenseReport(
            total_expenses=self.period_expenses,
            expense_categories=[LedgerLine(name="Operating", amount=self.period_expenses)],
            period_start=period.start,
            period_end=period.end,
        )

    async def test_connection(self) -> bool:
        return True


__all__ = [
    "AccountingClient",
    "AccountingServiceError",
    "HttpAccountingClient",
    "StaticAccountingClient",
]
