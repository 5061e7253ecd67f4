import json
import os
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from alignment_vault.core.constants.base import (
    DEFAULT_BASE_CONVERSION_GAS,
    DEFAULT_CONVERSION_REWARD,
    DEFAULT_DUST_THRESHOLD,
    DEFAULT_GAS_PER_CONTRIBUTOR,
    DEFAULT_HARVEST_INTERVAL,
    DEFAULT_MAX_CONSTANT_PRODUCT_SWAP_BPS,
    DEFAULT_MAX_PRICE_DEVIATION_BPS,
    DEFAULT_MIN_CONSTANT_PRODUCT_DEPTH,
    MAX_CONVERSION_REWARD,
    MAX_HARVEST_INTERVAL,
    MAX_PRICE_DEVIATION_BPS,
    MIN_HARVEST_INTERVAL,
)

_CONFIG_ENV_KEYS = ("ALIGNMENT_VAULT_CONFIG_PATH", "ALIGNMENT_VAULT_CONFIG")
_DEFAULT_CONFIG_FILENAME = "config.json"


class VaultSettings(BaseModel):
    """Bounded tunables of a vault. Admin setters re-validate against these bounds."""

    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    conversion_reward: int = Field(
        default=DEFAULT_CONVERSION_REWARD, ge=0, le=MAX_CONVERSION_REWARD
    )
    base_conversion_gas: int = Field(default=DEFAULT_BASE_CONVERSION_GAS, ge=0)
    gas_per_contributor: int = Field(default=DEFAULT_GAS_PER_CONTRIBUTOR, ge=0)
    max_price_deviation_bps: int = Field(
        default=DEFAULT_MAX_PRICE_DEVIATION_BPS, ge=1, le=MAX_PRICE_DEVIATION_BPS
    )
    harvest_interval: int = Field(
        default=DEFAULT_HARVEST_INTERVAL,
        ge=MIN_HARVEST_INTERVAL,
        le=MAX_HARVEST_INTERVAL,
    )
    dust_threshold: int = Field(default=DEFAULT_DUST_THRESHOLD, gt=0)
    min_constant_product_depth: int = Field(
        default=DEFAULT_MIN_CONSTANT_PRODUCT_DEPTH, ge=0
    )
    max_constant_product_swap_bps: int = Field(
        default=DEFAULT_MAX_CONSTANT_PRODUCT_SWAP_BPS, gt=0, le=10_000
    )


def _find_project_root(start: Path) -> Path | None:
    cur = start.resolve()
    for parent in [cur, *cur.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    return None


def _project_root() -> Path | None:
    return _find_project_root(Path.cwd()) or _find_project_root(Path(__file__).parent)


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()

    env_path = next(
        (os.getenv(k, "").strip() for k in _CONFIG_ENV_KEYS if os.getenv(k)), ""
    )
    if env_path:
        p = Path(env_path).expanduser()
        if p.is_absolute():
            return p
        root = _project_root()
        return (root / p) if root else p

    root = _project_root()
    return (root / _DEFAULT_CONFIG_FILENAME) if root else Path(_DEFAULT_CONFIG_FILENAME)


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        return json.loads(cfg_path.read_text())
    except json.JSONDecodeError as exc:
        logger.warning(f"Ignoring unreadable config {cfg_path}: {exc}")
        return {}


CONFIG: dict[str, Any] = load_config_json()


def set_config(config: dict[str, Any]) -> None:
    """Replace the global CONFIG dict in-place.

    This allows code that imported CONFIG at module import time to see updates.
    """
    CONFIG.clear()
    CONFIG.update(config)


def load_config(
    path: str | Path | None = None, *, require_exists: bool = False
) -> None:
    """Load config from disk into the global CONFIG dict."""
    set_config(load_config_json(path, require_exists=require_exists))


def get_vault_settings(config: dict[str, Any] | None = None) -> VaultSettings:
    """Build validated settings from the ``vault`` section; out-of-range values raise."""
    source = CONFIG if config is None else config
    return VaultSettings(**(source.get("vault") or {}))


def get_rpc_url() -> str | None:
    vault = CONFIG.get("vault", {})
    rpc_url = vault.get("rpc_url")
    if rpc_url:
        return str(rpc_url).strip()
    return os.environ.get("ALIGNMENT_VAULT_RPC_URL")
