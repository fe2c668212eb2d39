"""
In-memory Aave-v3-style lending market.

This is the external collaborator the vault supplies into. It models exactly
the surface the vault relies on:

- `supply(asset, amount, on_behalf_of)` / `withdraw(asset, amount, to)`
- `get_reserve_data(asset)` / `get_reserve_normalized_income(asset)`
- rebasing receipt-token balances (`scaled * index / RAY`)

Underlying liquidity lives in the receipt token's own custody on the shared
`TokenLedger`, so "available liquidity" is simply that balance. Scaled mints
round down and scaled burns round up, so the market never owes more than it
holds.

Test hooks (`set_reserve_flags`, `accrue`, `realize_loss`, `borrow`, ...)
perturb reserve state between vault calls; `reentry_hook` is invoked inside
`supply`/`withdraw` to emulate a callback into the caller.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Optional

from ..core.fixed_point import MAX_UINT256, RAY, mul_div_up, ray_div_down, ray_div_up, ray_mul, ray_mul_down
from ..core.market_adapter import MarketError
from ..core.types import ReserveConfig, ReserveData
from ..state.balances import ZERO_ADDRESS
from ..state.tokens import LedgerError, TokenLedger

logger = logging.getLogger(__name__)

MARKET_ADDRESS = "0x" + "a1" * 20

ReentryHook = Callable[[str, str], None]


@dataclass
class _Reserve:
    receipt_token: str
    configuration: ReserveConfig
    liquidity_index: int = RAY
    accrued_to_treasury: int = 0
    scaled_total_supply: int = 0
    scaled_balances: Dict[str, int] = field(default_factory=dict)


class SimulatedLendingMarket:
    def __init__(self, ledger: TokenLedger, address: str = MARKET_ADDRESS) -> None:
        self.ledger = ledger
        self.address = address
        self.reentry_hook: Optional[ReentryHook] = None
        self._reserves: Dict[str, _Reserve] = {}

    # -- listing -----------------------------------------------------------

    def list_reserve(
        self,
        asset: str,
        receipt_token: str,
        configuration: ReserveConfig = ReserveConfig(),
        liquidity_index: int = RAY,
    ) -> None:
        if asset in self._reserves:
            raise MarketError("RESERVE_ALREADY_INITIALIZED")
        if liquidity_index <= 0:
            raise ValueError("liquidity_index must be positive")
        self._reserves[asset] = _Reserve(
            receipt_token=receipt_token,
            configuration=configuration,
            liquidity_index=liquidity_index,
        )
        logger.debug("listed reserve asset=%s receipt=%s", asset, receipt_token)

    def _reserve(self, asset: str) -> _Reserve:
        reserve = self._reserves.get(asset)
        if reserve is None:
            raise MarketError("RESERVE_NOT_LISTED")
        return reserve

    # -- views -------------------------------------------------------------

    def get_reserve_data(self, asset: str) -> ReserveData:
        """Reserve data; an unlisted asset reports a zero receipt token."""
        reserve = self._reserves.get(asset)
        if reserve is None:
            return ReserveData(
                receipt_token=ZERO_ADDRESS,
                configuration=ReserveConfig(active=False, decimals=0),
                liquidity_index=0,
                accrued_to_treasury=0,
            )
        return ReserveData(
            receipt_token=reserve.receipt_token,
            configuration=reserve.configuration,
            liquidity_index=reserve.liquidity_index,
            accrued_to_treasury=reserve.accrued_to_treasury,
        )

    def get_reserve_normalized_income(self, asset: str) -> int:
        return self._reserve(asset).liquidity_index

    def scaled_balance_of(self, asset: str, holder: str) -> int:
        return self._reserve(asset).scaled_balances.get(holder, 0)

    def scaled_total_supply(self, asset: str) -> int:
        return self._reserve(asset).scaled_total_supply

    def balance_of(self, asset: str, holder: str) -> int:
        """Rebased receipt-token balance of `holder`."""
        reserve = self._reserve(asset)
        return ray_mul_down(reserve.scaled_balances.get(holder, 0), reserve.liquidity_index)

    def available_liquidity(self, asset: str) -> int:
        return self.ledger.balance_of(asset, self._reserve(asset).receipt_token)

    def supply_cap_usage(self, asset: str) -> int:
        """Supplied value counted against the cap (same formula the vault uses)."""
        reserve = self._reserve(asset)
        return ray_mul(reserve.scaled_total_supply + reserve.accrued_to_treasury, reserve.liquidity_index)

    # -- core entry points -------------------------------------------------

    def supply(self, asset: str, amount: int, on_behalf_of: str, *, sender: str) -> None:
        reserve = self._reserve(asset)
        cfg = reserve.configuration
        if amount <= 0:
            raise MarketError("INVALID_AMOUNT")
        if not cfg.active:
            raise MarketError("RESERVE_INACTIVE")
        if cfg.paused:
            raise MarketError("RESERVE_PAUSED")
        if cfg.frozen:
            raise MarketError("RESERVE_FROZEN")
        if cfg.supply_cap_whole != 0:
            cap_assets = cfg.supply_cap_whole * 10**cfg.decimals
            if self.supply_cap_usage(asset) + amount > cap_assets:
                raise MarketError("SUPPLY_CAP_EXCEEDED")

        try:
            self.ledger.transfer(asset, sender, reserve.receipt_token, amount)
        except LedgerError as exc:
            raise MarketError(f"TRANSFER_FAILED: {exc}") from exc
        if self.reentry_hook is not None:
            self.reentry_hook("supply", asset)

        scaled = ray_div_down(amount, reserve.liquidity_index)
        reserve.scaled_balances[on_behalf_of] = reserve.scaled_balances.get(on_behalf_of, 0) + scaled
        reserve.scaled_total_supply += scaled
        logger.debug("supply asset=%s amount=%d scaled=%d on_behalf_of=%s", asset, amount, scaled, on_behalf_of)

    def withdraw(self, asset: str, amount: int, to: str, *, sender: str) -> int:
        reserve = self._reserve(asset)
        cfg = reserve.configuration
        if not cfg.active:
            raise MarketError("RESERVE_INACTIVE")
        if cfg.paused:
            raise MarketError("RESERVE_PAUSED")

        scaled_balance = reserve.scaled_balances.get(sender, 0)
        balance = ray_mul_down(scaled_balance, reserve.liquidity_index)
        if amount == MAX_UINT256:
            amount = balance
        if amount <= 0:
            raise MarketError("INVALID_AMOUNT")
        if amount > balance:
            raise MarketError("NOT_ENOUGH_AVAILABLE_USER_BALANCE")
        if amount > self.ledger.balance_of(asset, reserve.receipt_token):
            raise MarketError("NOT_ENOUGH_LIQUIDITY")

        if self.reentry_hook is not None:
            self.reentry_hook("withdraw", asset)

        scaled = min(ray_div_up(amount, reserve.liquidity_index), scaled_balance)
        remaining = scaled_balance - scaled
        if remaining:
            reserve.scaled_balances[sender] = remaining
        else:
            reserve.scaled_balances.pop(sender, None)
        reserve.scaled_total_supply -= scaled
        self.ledger.transfer(asset, reserve.receipt_token, to, amount)
        logger.debug("withdraw asset=%s amount=%d scaled=%d to=%s", asset, amount, scaled, to)
        return amount

    # -- test hooks --------------------------------------------------------

    def set_reserve_flags(self, asset: str, **flags: bool) -> None:
        reserve = self._reserve(asset)
        allowed = {"active", "frozen", "paused"}
        unknown = set(flags) - allowed
        if unknown:
            raise ValueError(f"unknown reserve flags: {sorted(unknown)}")
        reserve.configuration = replace(reserve.configuration, **flags)

    def set_supply_cap(self, asset: str, supply_cap_whole: int) -> None:
        if supply_cap_whole < 0:
            raise ValueError("supply_cap_whole must be non-negative")
        reserve = self._reserve(asset)
        reserve.configuration = replace(reserve.configuration, supply_cap_whole=supply_cap_whole)

    def set_accrued_to_treasury(self, asset: str, scaled_amount: int) -> None:
        if scaled_amount < 0:
            raise ValueError("scaled_amount must be non-negative")
        self._reserve(asset).accrued_to_treasury = scaled_amount

    def set_liquidity_index(self, asset: str, index: int) -> None:
        """Overwrite the index without moving any underlying."""
        if index <= 0:
            raise ValueError("liquidity index must be positive")
        self._reserve(asset).liquidity_index = index

    def accrue(self, asset: str, index_delta: int) -> int:
        """Raise the index by `index_delta` and fund the new interest into custody.

        Returns the amount of underlying minted to back the accrual.
        """
        if index_delta <= 0:
            raise ValueError("index_delta must be positive")
        reserve = self._reserve(asset)
        old_index = reserve.liquidity_index
        new_index = old_index + index_delta
        backing = mul_div_up(reserve.scaled_total_supply, new_index, RAY) - ray_mul_down(
            reserve.scaled_total_supply, old_index
        )
        reserve.liquidity_index = new_index
        if backing > 0:
            self.ledger.mint(asset, reserve.receipt_token, backing)
        logger.debug("accrue asset=%s index %d -> %d backing=%d", asset, old_index, new_index, backing)
        return backing

    def realize_loss(self, asset: str, index_delta: int) -> int:
        """Lower the index by `index_delta` and burn the lost underlying from custody.

        Returns the amount of underlying burned.
        """
        reserve = self._reserve(asset)
        if index_delta <= 0 or index_delta >= reserve.liquidity_index:
            raise ValueError("index_delta must be positive and leave a positive index")
        old_index = reserve.liquidity_index
        new_index = old_index - index_delta
        lost = ray_mul_down(reserve.scaled_total_supply, old_index) - ray_mul_down(
            reserve.scaled_total_supply, new_index
        )
        burned = min(lost, self.ledger.balance_of(asset, reserve.receipt_token))
        reserve.liquidity_index = new_index
        if burned > 0:
            self.ledger.burn(asset, reserve.receipt_token, burned)
        logger.debug("loss asset=%s index %d -> %d burned=%d", asset, old_index, new_index, burned)
        return burned

    def borrow(self, asset: str, amount: int, to: str) -> None:
        """Lend out `amount` of custody liquidity (reduces what can be withdrawn)."""
        reserve = self._reserve(asset)
        if amount > self.ledger.balance_of(asset, reserve.receipt_token):
            raise MarketError("NOT_ENOUGH_LIQUIDITY")
        self.ledger.transfer(asset, reserve.receipt_token, to, amount)

    def repay(self, asset: str, amount: int, sender: str) -> None:
        reserve = self._reserve(asset)
        self.ledger.transfer(asset, sender, reserve.receipt_token, amount)

    # -- journaling --------------------------------------------------------

    def snapshot(self) -> Dict[str, _Reserve]:
        return copy.deepcopy(self._reserves)

    def restore(self, snap: Dict[str, _Reserve]) -> None:
        self._reserves = copy.deepcopy(snap)
