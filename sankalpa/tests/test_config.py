"""Tests for configuration validation."""

import logging

import pytest

from sankalpa.core.config import Settings, validate_config
from sankalpa.features.accounts.service import build_services, build_store
from sankalpa.store.memory import InMemoryAccountStore
from sankalpa.store.sql import SqlAccountStore


def make_settings(**overrides):
    return Settings(_env_file=None, **overrides)


def test_defaults_are_valid():
    settings = make_settings()
    assert settings.ACCOUNT_STORE == "memory"
    assert settings.CONTRACT_STAKE == 100
    assert settings.CONTRACT_REWARD == 150
    assert settings.CONTRACT_DAYS == 7
    assert validate_config(strict=True, settings_obj=settings) is True


def test_sql_store_without_url_fails_in_strict_mode():
    settings = make_settings(ACCOUNT_STORE="sql")
    with pytest.raises(RuntimeError):
        validate_config(strict=True, settings_obj=settings)


def test_problems_only_warn_when_not_strict(caplog):
    settings = make_settings(ACCOUNT_STORE="redis", STARTING_COINS=-1)
    with caplog.at_level(logging.WARNING, logger="sankalpa"):
        assert validate_config(strict=False, settings_obj=settings) is False
    messages = [r.getMessage() for r in caplog.records]
    assert any("ACCOUNT_STORE" in m for m in messages)
    assert any("STARTING_COINS" in m for m in messages)


def test_socket_limit_must_allow_one_socket():
    settings = make_settings(WS_MAX_SOCKETS_PER_ACCOUNT=0)
    with pytest.raises(RuntimeError, match="WS_MAX_SOCKETS_PER_ACCOUNT"):
        validate_config(strict=True, settings_obj=settings)


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("CONTRACT_STAKE", "40")
    monkeypatch.setenv("STORE_MAX_RETRIES", "5")
    settings = make_settings()
    assert settings.CONTRACT_STAKE == 40
    assert settings.STORE_MAX_RETRIES == 5


def test_build_store_selects_backend(tmp_path):
    memory = build_store(config=make_settings())
    assert isinstance(memory, InMemoryAccountStore)

    url = f"sqlite:///{tmp_path / 'config.db'}"
    sql = build_store(config=make_settings(ACCOUNT_STORE="sql", DATABASE_URL=url))
    assert isinstance(sql, SqlAccountStore)
    sql.engine.dispose()


def test_configured_economy_flows_into_services(clock):
    settings = make_settings(STARTING_COINS=200, CONTRACT_STAKE=40, CONTRACT_REWARD=60)
    services = build_services(InMemoryAccountStore(clock=clock), clock=clock, config=settings)

    services.accounts.provision("cfg")
    contract = services.contracts.start("cfg")

    assert contract.stake_amount == 40
    assert contract.reward_amount == 60
    assert services.store.get("cfg").coins == 160
