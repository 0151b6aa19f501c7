from decimal import Decimal

import pytest
from pydantic import ValidationError

from kpi_engine.config import AppSettings


def test_defaults_match_documented_thresholds():
    settings = AppSettings(_env_file=None)

    assert settings.adapter_timeout_seconds == 15.0
    assert settings.cash_safety_margin == Decimal("1.2")
    assert settings.payables_estimate_ratio == Decimal("0.15")
    assert settings.computation_policy == "WAIT"


def test_secrets_are_masked_for_logging():
    settings = AppSettings(_env_file=None, accounting_service_token="abc", GEMINI_API_KEY="gem")

    logged = settings.dict_for_logging()

    assert settings.ai_assist_api_key == "gem"
    assert logged["accounting_service_token"] == "***"
    assert logged["ai_assist_api_key"] == "***"
    assert logged["commerce_service_token"] is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("COMPUTATION_POLICY", "REJECT")
    monkeypatch.setenv("CASH_SAFETY_MARGIN", "1.5")

    settings = AppSettings(_env_file=None)

    assert settings.computation_policy == "REJECT"
    assert settings.cash_safety_margin == Decimal("1.5")


def test_unknown_policy_is_rejected():
    with pytest.raises(ValidationError):
        AppSettings(_env_file=None, computation_policy="QUEUE")
