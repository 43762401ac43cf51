"""Tests for core/config.py -- SECRET_KEY policy and token settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from auth.tokens import TokenConfig
from core.config import Settings

GOOD_KEY = "k" * 32


def test_debug_mode_generates_secret_key(monkeypatch) -> None:
    monkeypatch.delenv("SECRET_KEY", raising=False)
    settings = Settings(_env_file=None, debug=True)
    assert len(settings.secret_key) == 64


def test_production_requires_secret_key(monkeypatch) -> None:
    monkeypatch.delenv("SECRET_KEY", raising=False)
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(_env_file=None, debug=False)


def test_short_secret_key_is_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32 characters"):
        Settings(_env_file=None, debug=False, secret_key="short")


def test_secret_key_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("SECRET_KEY", GOOD_KEY)
    monkeypatch.setenv("DEBUG", "false")
    assert Settings(_env_file=None).secret_key == GOOD_KEY


@pytest.mark.parametrize("seconds", [0, -60])
def test_token_lifetime_must_be_positive(seconds: int) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, secret_key=GOOD_KEY, token_expire_seconds=seconds)


def test_bcrypt_rounds_bounds() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, secret_key=GOOD_KEY, bcrypt_rounds=3)


def test_token_config_from_settings() -> None:
    settings = Settings(_env_file=None, secret_key=GOOD_KEY, token_issuer="issuer-x", token_expire_seconds=900)
    config = TokenConfig.from_settings(settings)
    assert config == TokenConfig(secret_key=GOOD_KEY, issuer="issuer-x", duration_seconds=900)
    assert config.algorithm == "HS256"
