"""Data types for the lending vault.

All value types are frozen dataclasses. Amounts are integers at the asset's
native decimal precision; indexes are RAY-scaled (1e27).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Any, Mapping


@unique
class Rounding(Enum):
    DOWN = "down"
    UP = "up"


@unique
class VaultStatus(Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    PAUSED = "paused"


@unique
class StrategyKind(Enum):
    CASH = "cash"
    LENDING = "lending"


@unique
class Event(Enum):
    INITIALIZED = "Initialized"
    POOL_SET = "PoolSet"
    RECEIPT_TOKEN_SET = "ReceiptTokenSet"
    DEPOSIT = "Deposit"
    WITHDRAW = "Withdraw"
    SKIM = "Skim"
    PAUSED = "Paused"
    UNPAUSED = "Unpaused"
    DEPOSIT_CAP_SET = "DepositCapSet"


@dataclass(frozen=True)
class EventRecord:
    event: Event
    args: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ReserveConfig:
    """Reserve configuration flags as reported by the lending market."""

    active: bool = True
    frozen: bool = False
    paused: bool = False
    supply_cap_whole: int = 0  # whole tokens; 0 = uncapped
    decimals: int = 6


@dataclass(frozen=True)
class ReserveData:
    """Snapshot of `getReserveData(asset)`."""

    receipt_token: str
    configuration: ReserveConfig
    liquidity_index: int
    accrued_to_treasury: int  # scaled units


@dataclass(frozen=True)
class MarketConstraints:
    """What the strategy's backing store allows right now.

    `deposit_headroom` is how much more can be invested before the external
    supply cap binds (MAX_UINT256 when uncapped). `withdraw_liquidity` is the
    most that can be divested right now.
    """

    deposits_enabled: bool
    withdrawals_enabled: bool
    deposit_headroom: int
    withdraw_liquidity: int


@dataclass(frozen=True)
class CapacityFigures:
    max_deposit_assets: int
    max_mint_shares: int
    max_withdraw_assets: int
    max_redeem_shares: int


@dataclass(frozen=True)
class ReserveView:
    """Everything the capacity limiter needs from the market, read in one go."""

    configuration: ReserveConfig
    liquidity_index: int
    scaled_total_supply: int
    accrued_to_treasury: int
    available_liquidity: int
