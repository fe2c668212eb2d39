"""
Vault and harness configuration.

- `load_vault_config(path)` reads a YAML file and validates it fail-closed.
- `harness_config_from_env()` reads ``VAULT_FUZZ_*`` variables; malformed
  values fall back to the default and out-of-range values are clamped.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from .types import StrategyKind

CONFIG_SCHEMA = "lending-vault/config/v1"


class ConfigError(Exception):
    code = "ConfigError"


@dataclass(frozen=True)
class VaultConfig:
    name: str
    symbol: str
    first_deposit_amount: int
    deposit_cap: Optional[int] = None
    strategy: StrategyKind = StrategyKind.LENDING

    def __post_init__(self) -> None:
        if self.first_deposit_amount <= 0:
            raise ConfigError("first_deposit_amount must be positive")
        if self.deposit_cap is not None and self.deposit_cap < 0:
            raise ConfigError("deposit_cap must be non-negative")


@dataclass(frozen=True)
class HarnessConfig:
    seed: int = 0
    steps: int = 200
    holders: int = 4
    max_amount: int = 1_000_000_000
    strategy: StrategyKind = StrategyKind.LENDING


def _require_mapping(obj: Any, *, name: str) -> dict[str, Any]:
    if not isinstance(obj, dict):
        raise ConfigError(f"{name} must be an object")
    return obj


def _require_str(obj: Any, *, name: str) -> str:
    if not isinstance(obj, str) or not obj.strip():
        raise ConfigError(f"{name} must be a non-empty string")
    return obj.strip()


def _require_int(obj: Any, *, name: str, lo: int = 0) -> int:
    if not isinstance(obj, int) or isinstance(obj, bool):
        raise ConfigError(f"{name} must be an integer")
    if obj < lo:
        raise ConfigError(f"{name} must be >= {lo}")
    return obj


def parse_vault_config(root_obj: Any) -> VaultConfig:
    root = _require_mapping(root_obj, name="config")
    schema = _require_str(root.get("schema"), name="config.schema")
    if schema != CONFIG_SCHEMA:
        raise ConfigError(f"unsupported config.schema: {schema}")

    vault = _require_mapping(root.get("vault"), name="config.vault")
    cap_raw = vault.get("deposit_cap")
    deposit_cap = None if cap_raw is None else _require_int(cap_raw, name="vault.deposit_cap")

    strategy_raw = _require_str(vault.get("strategy", StrategyKind.LENDING.value), name="vault.strategy")
    try:
        strategy = StrategyKind(strategy_raw)
    except ValueError as exc:
        raise ConfigError(f"unsupported vault.strategy: {strategy_raw}") from exc

    return VaultConfig(
        name=_require_str(vault.get("name"), name="vault.name"),
        symbol=_require_str(vault.get("symbol"), name="vault.symbol"),
        first_deposit_amount=_require_int(vault.get("first_deposit_amount"), name="vault.first_deposit_amount", lo=1),
        deposit_cap=deposit_cap,
        strategy=strategy,
    )


def load_vault_config(path: Path | str) -> VaultConfig:
    raw = Path(path).read_text(encoding="utf-8")
    try:
        loaded = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    return parse_vault_config(loaded)


def _env_int(name: str, default: int, *, lo: int, hi: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return int(default)
    try:
        v = int(raw.strip())
    except ValueError:
        return int(default)
    if v < lo:
        return int(lo)
    if v > hi:
        return int(hi)
    return int(v)


def harness_config_from_env() -> HarnessConfig:
    defaults = HarnessConfig()
    strategy_raw = os.environ.get("VAULT_FUZZ_STRATEGY", "").strip()
    try:
        strategy = StrategyKind(strategy_raw) if strategy_raw else defaults.strategy
    except ValueError:
        strategy = defaults.strategy
    return HarnessConfig(
        seed=_env_int("VAULT_FUZZ_SEED", defaults.seed, lo=0, hi=2**63 - 1),
        steps=_env_int("VAULT_FUZZ_STEPS", defaults.steps, lo=1, hi=100_000),
        holders=_env_int("VAULT_FUZZ_HOLDERS", defaults.holders, lo=1, hi=64),
        max_amount=_env_int("VAULT_FUZZ_MAX_AMOUNT", defaults.max_amount, lo=1, hi=10**30),
        strategy=strategy,
    )
