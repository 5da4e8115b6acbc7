"""Unit tests for core/config.py -- Settings defaults and validation.

Settings() is constructed directly (not via get_settings()) so each test sees
only the environment monkeypatch gives it.
"""

import pytest
from pydantic import ValidationError

from core.config import Settings

_KEY = "k" * 32


def test_governor_defaults(monkeypatch):
    for var in ("LOGIN_WINDOW_MS", "LOGIN_MAX_ATTEMPTS", "LOGIN_RESET_ON_SUCCESS"):
        monkeypatch.delenv(var, raising=False)
    settings = Settings(secret_key=_KEY, _env_file=None)
    assert settings.login_window_ms == 900_000
    assert settings.login_window_seconds == 900.0
    assert settings.login_max_attempts == 10
    assert settings.login_reset_on_success is False


def test_governor_values_from_environment(monkeypatch):
    monkeypatch.setenv("LOGIN_WINDOW_MS", "60000")
    monkeypatch.setenv("LOGIN_MAX_ATTEMPTS", "3")
    settings = Settings(secret_key=_KEY, _env_file=None)
    assert settings.login_window_seconds == 60.0
    assert settings.login_max_attempts == 3


@pytest.mark.parametrize("field", ["login_window_ms", "login_max_attempts"])
def test_non_positive_governor_values_rejected(field):
    with pytest.raises(ValidationError):
        Settings(secret_key=_KEY, _env_file=None, **{field: 0})


def test_missing_secret_key_in_production_is_fatal(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with pytest.raises(ValidationError):
        Settings(debug=False, _env_file=None)


def test_debug_generates_secret_key(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    settings = Settings(debug=True, _env_file=None)
    assert len(settings.secret_key) >= 32


def test_short_secret_key_rejected():
    with pytest.raises(ValidationError):
        Settings(secret_key="short", _env_file=None)
