from __future__ import annotations

import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import Settings  # noqa: E402


def test_development_defaults_are_valid():
    settings = Settings(ENVIRONMENT="development", AI_API_KEY="")
    settings.validate_configuration()
    assert settings.MAX_PLANS_PER_USER == 3
    assert settings.DEFAULT_FLEX_DAYS_PER_MONTH == 2


def test_production_gate_requires_ai_key_and_no_wildcard_cors():
    settings = Settings(ENVIRONMENT="production", AI_API_KEY="", CORS_ORIGINS=["*"])
    with pytest.raises(RuntimeError) as excinfo:
        settings.validate_configuration()
    message = str(excinfo.value)
    assert "AI_API_KEY" in message
    assert "CORS_ORIGINS" in message


def test_out_of_range_limits_are_rejected():
    with pytest.raises(RuntimeError):
        Settings(MAX_PLANS_PER_USER=0).validate_configuration()
    with pytest.raises(RuntimeError):
        Settings(AI_PROVIDER="google").validate_configuration()
