"""Compute and store one KPI snapshot, optionally syncing cash first."""

from __future__ import annotations

import argparse
import asyncio
from datetime import date

from kpi_engine.api.dependencies.services import build_services
from kpi_engine.config import get_settings
from kpi_engine.core.logging import setup_logging
from kpi_engine.db.database import Database
from kpi_engine.providers.facts import ReportingPeriod


async def _run(start: date | None, end: date | None, sync_cash: bool, require_durable: bool) -> None:
    settings = get_settings()
    database = Database(settings.database_url)
    try:
        await database.create_all()
        services = build_services(settings, database=database)
        if sync_cash:
            result = await services.cash.sync_cash_balance()
            print(f"Cash {result.status.status.value}: available {result.status.available}, net {result.status.net_cash}")
        period: ReportingPeriod | None = None
        if start is not None or end is not None:
            period = services.snapshots.resolve_period(start, end)
        snapshot = await services.snapshots.run_full_computation(period, require_durable=require_durable)
        print(
            f"Snapshot {snapshot.id} for {snapshot.period.start} to {snapshot.period.end}: "
            f"{len(snapshot.kpis)} metrics, {len(snapshot.alerts)} alerts, "
            f"persisted={snapshot.data_source.persisted}"
        )
    finally:
        await database.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Compute one KPI snapshot")
    parser.add_argument("--start", type=date.fromisoformat, default=None)
    parser.add_argument("--end", type=date.fromisoformat, default=None)
    parser.add_argument("--sync-cash", action="store_true", help="Sync the cash balance before computing")
    parser.add_argument("--require-durable", action="store_true", help="Fail if the snapshot cannot be stored")
    args = parser.parse_args()
    setup_logging(get_settings().log_level)
    asyncio.run(_run(args.start, args.end, args.sync_cash, args.require_durable))


if __name__ == "__main__":
    main()
