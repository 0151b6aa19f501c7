"""Reporting period resolution."""

from __future__ import annotations

from datetime import date

from kpi_engine.core.errors import InvalidPeriod
from kpi_engine.providers.facts import ReportingPeriod


def month_to_date(today: date) -> ReportingPeriod:
    return ReportingPeriod(start=today.replace(day=1), end=today)


def resolve_period(
    start: date | None,
    end: date | None,
    *,
    today: date,
    max_days: int = 366,
) -> ReportingPeriod:
    """Validate a caller supplied period, defaulting to month-to-date.

    A missing ``end`` means today; a missing ``start`` means the first of the
    end date's month. Raises ``InvalidPeriod`` when the start falls after the
    end, the end lies in the future, or the span exceeds ``max_days``.
    """

    if start is None and end is None:
        return month_to_date(today)
    resolved_end = end or today
    resolved_start = start or resolved_end.replace(day=1)
    if resolved_start > resolved_end:
        raise InvalidPeriod(f"period start {resolved_start} is after end {resolved_end}")
    if resolved_end > today:
        raise InvalidPeriod(f"period end {resolved_end} is in the future")
    period = ReportingPeriod(start=resolved_start, end=resolved_end)
    if period.days > max_days:
        raise InvalidPeriod(f"period spans {period.days} days, maximum is {max_days}")
    return period


__all__ = ["month_to_date", "resolve_period"]
