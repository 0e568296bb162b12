"""
tests/test_config.py -- Settings validation.

Covers:
  - production mode refuses to start without SECRET_KEY
  - debug mode generates a key
  - keys shorter than 32 characters are always rejected
  - account-protection defaults and environment overrides
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings, get_settings


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("DEBUG", "SECRET_KEY", "BCRYPT_ROUNDS", "AUTH_RATE_LIMIT", "MAX_LOGIN_ATTEMPTS"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_production_requires_secret_key(clean_env):
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(_env_file=None)


def test_debug_generates_secret_key(clean_env):
    settings = Settings(_env_file=None, debug=True)
    assert len(settings.secret_key) >= 32


def test_short_secret_key_rejected_even_in_debug(clean_env):
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(_env_file=None, debug=True, secret_key="short")


def test_explicit_secret_key_kept(clean_env):
    settings = Settings(_env_file=None, secret_key="s" * 40)
    assert settings.secret_key == "s" * 40


def test_defaults(clean_env):
    settings = Settings(_env_file=None, secret_key="s" * 40)
    assert settings.max_login_attempts == 5
    assert settings.lockout_seconds == 7200
    assert settings.min_password_length == 6
    assert settings.bcrypt_rounds == 12
    assert settings.default_role == "analyst"
    assert settings.default_department_id == "DEPT001"


def test_environment_overrides(clean_env):
    clean_env.setenv("SECRET_KEY", "e" * 40)
    clean_env.setenv("MAX_LOGIN_ATTEMPTS", "3")
    settings = Settings(_env_file=None)
    assert settings.secret_key == "e" * 40
    assert settings.max_login_attempts == 3


def test_bcrypt_rounds_bounds(clean_env):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, secret_key="s" * 40, bcrypt_rounds=3)


def test_get_settings_is_cached():
    assert get_settings() is get_settings()
