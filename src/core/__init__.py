"""
Lending vault kernel: conversion math, capacity limits, strategies and the
vault state machine.
"""

from .capacity import (
    capacity_figures,
    lending_constraints,
    max_deposit,
    max_mint,
    max_redeem,
    max_withdraw,
)
from .config import ConfigError, HarnessConfig, VaultConfig, harness_config_from_env, load_vault_config
from .conversion import (
    assets_for_mint,
    assets_for_redeem,
    position_value,
    shares_for_deposit,
    shares_for_withdraw,
    to_assets,
    to_shares,
)
from .errors import (
    AlreadyInitializedError,
    CapacityExceededError,
    InvalidAssetError,
    MarketDivestError,
    NotInitializedError,
    NullAddressError,
    ReentrantCallError,
    UnauthorizedError,
    VaultError,
    VaultPausedError,
)
from .fixed_point import MAX_UINT256, RAY
from .market_adapter import ExternalMarketAdapter, LendingMarket, MarketError
from .strategies import LendingMarketStrategy, PassthroughCash, StrategyAdapter, make_strategy
from .types import (
    CapacityFigures,
    Event,
    EventRecord,
    MarketConstraints,
    ReserveConfig,
    ReserveData,
    ReserveView,
    Rounding,
    StrategyKind,
    VaultStatus,
)
from .vault import DEAD_ADDRESS, VAULT_ADDRESS, LendingVault, role_authorizer

__all__ = [
    "capacity_figures",
    "lending_constraints",
    "max_deposit",
    "max_mint",
    "max_redeem",
    "max_withdraw",
    "ConfigError",
    "HarnessConfig",
    "VaultConfig",
    "harness_config_from_env",
    "load_vault_config",
    "assets_for_mint",
    "assets_for_redeem",
    "position_value",
    "shares_for_deposit",
    "shares_for_withdraw",
    "to_assets",
    "to_shares",
    "AlreadyInitializedError",
    "CapacityExceededError",
    "InvalidAssetError",
    "MarketDivestError",
    "NotInitializedError",
    "NullAddressError",
    "ReentrantCallError",
    "UnauthorizedError",
    "VaultError",
    "VaultPausedError",
    "MAX_UINT256",
    "RAY",
    "ExternalMarketAdapter",
    "LendingMarket",
    "MarketError",
    "LendingMarketStrategy",
    "PassthroughCash",
    "StrategyAdapter",
    "make_strategy",
    "CapacityFigures",
    "Event",
    "EventRecord",
    "MarketConstraints",
    "ReserveConfig",
    "ReserveData",
    "ReserveView",
    "Rounding",
    "StrategyKind",
    "VaultStatus",
    "DEAD_ADDRESS",
    "VAULT_ADDRESS",
    "LendingVault",
    "role_authorizer",
]
