"""Unit tests for environment-driven configuration."""

from __future__ import annotations

import pytest

from scopekeeper.core import config
from scopekeeper.core.config import (
    DevelopmentConfig,
    ProductionConfig,
    env_bool,
    get_config,
    parse_binds,
)


@pytest.mark.parametrize("raw", ["1", "true", "YES", " on "])
def test_env_bool_truthy(monkeypatch, raw):
    monkeypatch.setenv("SCOPEKEEPER_FLAG", raw)
    assert env_bool("SCOPEKEEPER_FLAG") is True


def test_env_bool_falsy_and_default(monkeypatch):
    monkeypatch.setenv("SCOPEKEEPER_FLAG", "nope")
    assert env_bool("SCOPEKEEPER_FLAG", True) is False
    monkeypatch.delenv("SCOPEKEEPER_FLAG")
    assert env_bool("SCOPEKEEPER_FLAG", True) is True


def test_parse_binds():
    assert parse_binds(None) == {}
    assert parse_binds("reporting=sqlite:///r.db; ;archive = postgresql://db/a") == {
        "reporting": "sqlite:///r.db",
        "archive": "postgresql://db/a",
    }


def test_parse_binds_rejects_malformed_entries():
    with pytest.raises(ValueError, match="Malformed bind entry"):
        parse_binds("reporting")
    with pytest.raises(ValueError):
        parse_binds("=sqlite://")


@pytest.mark.parametrize(
    ("env", "expected"),
    [
        ("testing", config.TestingConfig),
        ("Production", ProductionConfig),
        ("development", DevelopmentConfig),
        ("staging", DevelopmentConfig),
    ],
)
def test_get_config(monkeypatch, env, expected):
    monkeypatch.setenv("APP_ENV", env)
    assert get_config() is expected


def test_get_config_defaults_to_development(monkeypatch):
    monkeypatch.delenv("APP_ENV", raising=False)
    assert get_config() is DevelopmentConfig


def test_testing_config_uses_sqlite_levels():
    assert config.TestingConfig.TESTING is True
    assert config.TestingConfig.DEFAULT_ISOLATION_LEVEL == "SERIALIZABLE"
    assert config.TestingConfig.SESSION_AUTOFLUSH is False
