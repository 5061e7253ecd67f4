from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from alignment_vault.core import config as config_module
from alignment_vault.core.config import (
    VaultSettings,
    get_rpc_url,
    get_vault_settings,
    load_config,
    load_config_json,
    resolve_config_path,
    set_config,
)
from alignment_vault.core.constants.base import (
    DEFAULT_HARVEST_INTERVAL,
    DEFAULT_MAX_PRICE_DEVIATION_BPS,
    SECONDS_PER_DAY,
)


@pytest.fixture
def restore_config():
    saved = dict(config_module.CONFIG)
    yield
    set_config(saved)


def test_resolve_config_path_prefers_explicit(tmp_path):
    target = tmp_path / "custom.json"
    assert resolve_config_path(target) == target


def test_resolve_config_path_from_env(tmp_path, monkeypatch):
    target = tmp_path / "env.json"
    monkeypatch.setenv("ALIGNMENT_VAULT_CONFIG_PATH", str(target))
    assert resolve_config_path() == target


def test_load_config_json_missing_and_invalid(tmp_path):
    missing = tmp_path / "missing.json"
    assert load_config_json(missing) == {}
    with pytest.raises(FileNotFoundError):
        load_config_json(missing, require_exists=True)

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    assert load_config_json(broken) == {}


def test_load_config_from_file(tmp_path, restore_config):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"vault": {"max_price_deviation_bps": 300, "rpc_url": " http://localhost:8545 "}})
    )

    load_config(path)
    assert get_vault_settings().max_price_deviation_bps == 300
    assert get_rpc_url() == "http://localhost:8545"


def test_get_rpc_url_falls_back_to_env(monkeypatch, restore_config):
    set_config({})
    monkeypatch.setenv("ALIGNMENT_VAULT_RPC_URL", "http://rpc.example")
    assert get_rpc_url() == "http://rpc.example"


def test_vault_settings_defaults():
    settings = get_vault_settings({})
    assert settings.max_price_deviation_bps == DEFAULT_MAX_PRICE_DEVIATION_BPS
    assert settings.harvest_interval == DEFAULT_HARVEST_INTERVAL


def test_vault_settings_ignores_unknown_keys():
    settings = get_vault_settings({"vault": {"dust_threshold": 5, "rpc_url": "x"}})
    assert settings.dust_threshold == 5


@pytest.mark.parametrize(
    "field,value",
    [
        ("conversion_reward", 10**17 + 1),
        ("max_price_deviation_bps", 2001),
        ("max_price_deviation_bps", 0),
        ("harvest_interval", 60),
        ("harvest_interval", 31 * SECONDS_PER_DAY),
        ("dust_threshold", 0),
    ],
)
def test_vault_settings_bounds(field, value):
    with pytest.raises(ValidationError):
        VaultSettings(**{field: value})
    settings = VaultSettings()
    with pytest.raises(ValidationError):
        setattr(settings, field, value)
