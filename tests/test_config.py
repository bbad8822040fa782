from datetime import timedelta

import pytest
from pydantic import ValidationError

from authflow.core.config import Settings, parse_duration


@pytest.mark.parametrize("raw, expected", [
    ("15m", timedelta(minutes=15)),
    ("7d", timedelta(days=7)),
    ("30s", timedelta(seconds=30)),
    ("12H", timedelta(hours=12)),
    ("900", timedelta(seconds=900)),
    (60, timedelta(minutes=1)),
    (timedelta(hours=1), timedelta(hours=1)),
])
def test_parse_duration(raw, expected):
    assert parse_duration(raw) == expected


@pytest.mark.parametrize("raw", ["fifteen", "15x", "0m", -5])
def test_parse_duration_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_duration(raw)


def test_defaults_match_documented_values():
    settings = Settings(_env_file=None)

    assert settings.jwt_access_expiry == timedelta(minutes=15)
    assert settings.jwt_refresh_expiry == timedelta(days=7)
    assert settings.hash_time_cost >= 1
    # Development gets random, distinct secrets
    assert settings.access_secret
    assert settings.access_secret != settings.refresh_secret


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("JWT_ACCESS_EXPIRY", "5m")
    monkeypatch.setenv("JWT_REFRESH_EXPIRY", "2d")
    monkeypatch.setenv("CODE_LENGTH", "8")
    monkeypatch.setenv("JWT_ACCESS_SECRET", "a-secret")
    monkeypatch.setenv("JWT_REFRESH_SECRET", "r-secret")

    settings = Settings(_env_file=None)

    assert settings.jwt_access_expiry == timedelta(minutes=5)
    assert settings.jwt_refresh_expiry == timedelta(days=2)
    assert settings.code_length == 8
    assert settings.access_secret == "a-secret"


def test_production_requires_secrets():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, environment="production")


def test_secrets_must_differ():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, jwt_access_secret="same", jwt_refresh_secret="same")


def test_refresh_must_outlive_access():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, jwt_access_expiry="2d", jwt_refresh_expiry="1d")


def test_code_window_is_bounded():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, verification_code_expiry="2d")


def test_hash_cost_is_bounded():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, hash_time_cost=0)


def test_trusted_proxies(monkeypatch):
    monkeypatch.setenv("TRUSTED_PROXIES", "10.0.0.1, 172.16.0.0/12")
    settings = Settings(_env_file=None)

    networks = settings.trusted_proxy_networks
    assert [str(n) for n in networks] == ["10.0.0.1/32", "172.16.0.0/12"]
    assert Settings(_env_file=None, trusted_proxies="").trusted_proxy_networks == ()


def test_trusted_proxies_must_be_addresses():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, trusted_proxies="proxy.internal")
