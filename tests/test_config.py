"""Tests for core/config.py -- Settings validation rules.

Settings are constructed directly with _env_file=None so a developer's .env
never leaks into the suite. Keyword arguments take precedence over the
environment variables conftest.py sets.
"""

import pytest

from core.config import Settings

_A = "a" * 32
_B = "b" * 32


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_production_requires_secrets() -> None:
    with pytest.raises(ValueError, match="ACCESS_TOKEN_SECRET"):
        _settings(debug=False, access_token_secret="", refresh_token_secret=_B)
    with pytest.raises(ValueError, match="REFRESH_TOKEN_SECRET"):
        _settings(debug=False, access_token_secret=_A, refresh_token_secret="")


def test_production_with_secrets() -> None:
    s = _settings(debug=False, access_token_secret=_A, refresh_token_secret=_B)
    assert s.access_token_secret == _A
    assert s.refresh_token_secret == _B


def test_debug_generates_distinct_secrets() -> None:
    s = _settings(debug=True, access_token_secret="", refresh_token_secret="")
    assert len(s.access_token_secret) >= 32
    assert len(s.refresh_token_secret) >= 32
    assert s.access_token_secret != s.refresh_token_secret


def test_short_secret_rejected() -> None:
    with pytest.raises(ValueError, match="at least 32"):
        _settings(debug=False, access_token_secret="short", refresh_token_secret=_B)


def test_identical_secrets_rejected() -> None:
    with pytest.raises(ValueError, match="must differ"):
        _settings(debug=False, access_token_secret=_A, refresh_token_secret=_A)


@pytest.mark.parametrize(
    "overrides",
    [
        {"access_token_expire_minutes": 0},
        {"refresh_token_expire_days": -1},
        {"password_hash_rounds": 3},
        {"password_hash_rounds": 32},
        {"refresh_rotation_retries": 0},
    ],
)
def test_out_of_range_values_rejected(overrides: dict) -> None:
    with pytest.raises(ValueError):
        _settings(debug=True, **overrides)


def test_expiry_in_seconds() -> None:
    s = _settings(
        debug=False,
        access_token_secret=_A,
        refresh_token_secret=_B,
        access_token_expire_minutes=15,
        refresh_token_expire_days=10,
    )
    assert s.access_token_expire_seconds == 15 * 60
    assert s.refresh_token_expire_seconds == 10 * 86400


def test_field_defaults() -> None:
    fields = Settings.model_fields
    assert fields["access_token_expire_minutes"].default == 15
    assert fields["refresh_token_expire_days"].default == 10
    assert fields["password_hash_rounds"].default == 10
    assert fields["refresh_rotation_retries"].default == 3
    assert fields["secure_cookies"].default is True
    assert fields["upload_dir"].default == "public/temp"
