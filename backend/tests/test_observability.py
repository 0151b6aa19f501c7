import logging

from fastapi import FastAPI

from kpi_engine.core import telemetry
from kpi_engine.core.logging import setup_logging


def test_setup_logging_installs_one_handler():
    root = logging.getLogger()
    before = list(root.handlers)
    try:
        setup_logging("debug")
        setup_logging(logging.INFO)

        ours = [handler for handler in root.handlers if handler.get_name() == "kpi_engine.stdout"]
        assert len(ours) == 1
        assert root.level == logging.INFO
        assert logging.getLogger("sqlalchemy").level == logging.WARNING
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)


def test_disabled_telemetry_leaves_app_uninstrumented(settings):
    app = FastAPI()

    telemetry.setup_telemetry(app, settings)

    assert telemetry._configured is False
    assert not getattr(app, "_is_instrumented_by_opentelemetry", False)


def test_engine_metrics_record_without_sdk():
    engine_metrics = telemetry.get_engine_metrics()

    engine_metrics.record_computation("persisted", 0.25, stale=2)
    engine_metrics.record_cash_sync("HEALTHY")

    assert telemetry.get_engine_metrics() is engine_metrics
