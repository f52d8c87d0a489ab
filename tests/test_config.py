"""
tests/test_config.py -- Settings defaults and the SECRET_KEY policy.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings


@pytest.fixture(autouse=True)
def _no_secret_in_env(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)


def test_debug_generates_temporary_key():
    settings = Settings(debug=True)
    assert len(settings.secret_key) >= 32


def test_production_requires_secret_key():
    with pytest.raises(ValidationError, match="SECRET_KEY must be set"):
        Settings(debug=False)


def test_short_secret_key_rejected():
    with pytest.raises(ValidationError, match="32 or more"):
        Settings(debug=True, secret_key="too-short")


def test_recovery_defaults():
    settings = Settings(debug=True)
    assert settings.reset_token_ttl_seconds == 600
    assert settings.forgot_password_delay_seconds == 5.0
    assert settings.equalize_forgot_password_latency is False
    assert settings.session_cookie_name == "qid"


def test_frontend_url_trailing_slash_stripped():
    settings = Settings(debug=True, frontend_url="https://app.example.com/")
    assert settings.frontend_url == "https://app.example.com"


def test_env_vars_are_read(monkeypatch):
    monkeypatch.setenv("FORGOT_PASSWORD_DELAY_SECONDS", "1.5")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
    settings = Settings(debug=True)
    assert settings.forgot_password_delay_seconds == 1.5
    assert settings.redis_url == "redis://cache:6379/0"
