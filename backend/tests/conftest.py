import asyncio
import inspect
import pathlib
import sys
from datetime import datetime, timedelta, timezone

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from kpi_engine.config import AppSettings  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used in the suite."""

    config.addinivalue_line("markers", "asyncio: mark test as running in an asyncio event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async test functions without requiring pytest-asyncio."""

    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            argnames = pyfuncitem._fixtureinfo.argnames
            testargs = {name: pyfuncitem.funcargs[name] for name in argnames}
            loop.run_until_complete(test_function(**testargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


class TickingClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime) -> None:
        self._now = start

    def __call__(self) -> datetime:
        current = self._now
        self._now = current + timedelta(seconds=1)
        return current


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        use_mock_data=True,
        adapter_timeout_seconds=0.5,
    )


@pytest.fixture
def clock() -> TickingClock:
    # 10:00 in America/Chicago, so the business date is 2026-10-15
    return TickingClock(datetime(2026, 10, 15, 15, 0, tzinfo=timezone.utc))
