from datetime import date

import pytest

from kpi_engine.core.errors import InvalidPeriod
from kpi_engine.services.periods import month_to_date, resolve_period

TODAY = date(2026, 10, 15)


def test_defaults_to_month_to_date():
    period = resolve_period(None, None, today=TODAY)

    assert period == month_to_date(TODAY)
    assert period.start == date(2026, 10, 1)
    assert period.days == 15


def test_missing_start_uses_first_of_end_month():
    period = resolve_period(None, date(2026, 9, 20), today=TODAY)

    assert period.start == date(2026, 9, 1)
    assert period.end == date(2026, 9, 20)


@pytest.mark.parametrize(
    "start, end",
    [
        (date(2026, 10, 10), date(2026, 10, 1)),
        (date(2026, 10, 1), date(2026, 10, 16)),
        (date(2025, 1, 1), date(2026, 10, 1)),
    ],
)
def test_rejects_invalid_periods(start, end):
    with pytest.raises(InvalidPeriod) as excinfo:
        resolve_period(start, end, today=TODAY)

    assert excinfo.value.kind == "invalid_period"
    assert excinfo.value.status_code == 422
