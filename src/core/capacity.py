"""Capacity limits: maxDeposit / maxMint / maxWithdraw / maxRedeem.

Pure functions over the current market constraints and vault totals. They
never raise on reachable inputs: limits saturate to 0 or to MAX_UINT256.

Market rules:
- deposits need the reserve active, not frozen and not paused;
- withdrawals need the reserve active and not paused (frozen still allows exits);
- a non-zero supply cap leaves ``cap * 10**decimals - used`` headroom, where
  ``used = rayMul(scaled_total_supply + accrued_to_treasury, liquidity_index)``;
- withdrawals can never exceed the liquidity sitting in the receipt token's
  custody.
"""

from __future__ import annotations

from typing import Optional

from .conversion import assets_for_redeem, shares_for_deposit, to_shares
from .fixed_point import MAX_UINT256, ray_mul, saturating_sub
from .types import CapacityFigures, MarketConstraints, ReserveView, Rounding


def lending_constraints(view: ReserveView) -> MarketConstraints:
    cfg = view.configuration
    deposits_enabled = cfg.active and not cfg.frozen and not cfg.paused
    withdrawals_enabled = cfg.active and not cfg.paused

    if cfg.supply_cap_whole == 0:
        headroom = MAX_UINT256
    else:
        cap_assets = cfg.supply_cap_whole * 10**cfg.decimals
        used = ray_mul(view.scaled_total_supply + view.accrued_to_treasury, view.liquidity_index)
        headroom = saturating_sub(cap_assets, used)

    return MarketConstraints(
        deposits_enabled=deposits_enabled,
        withdrawals_enabled=withdrawals_enabled,
        deposit_headroom=headroom,
        withdraw_liquidity=view.available_liquidity,
    )


def generic_max_deposit(total_assets: int, deposit_cap: Optional[int]) -> int:
    """Vault-level ceiling, independent of the market."""
    if deposit_cap is None:
        return MAX_UINT256
    return saturating_sub(deposit_cap, total_assets)


def generic_max_mint() -> int:
    return MAX_UINT256


def max_deposit(constraints: MarketConstraints, total_assets: int, deposit_cap: Optional[int]) -> int:
    if not constraints.deposits_enabled:
        return 0
    return min(constraints.deposit_headroom, generic_max_deposit(total_assets, deposit_cap))


def max_mint(
    constraints: MarketConstraints,
    total_assets: int,
    total_shares: int,
    deposit_cap: Optional[int],
) -> int:
    assets = max_deposit(constraints, total_assets, deposit_cap)
    if assets == MAX_UINT256:
        return generic_max_mint()
    # Floor here pairs with the ceil in assets_for_mint: minting exactly this
    # many shares never costs more than `assets`.
    return min(shares_for_deposit(assets, total_assets, total_shares), generic_max_mint())


def max_withdraw(
    constraints: MarketConstraints,
    owner_shares: int,
    total_assets: int,
    total_shares: int,
) -> int:
    if not constraints.withdrawals_enabled:
        return 0
    convertible = assets_for_redeem(owner_shares, total_assets, total_shares)
    return min(convertible, constraints.withdraw_liquidity)


def max_redeem(
    constraints: MarketConstraints,
    owner_shares: int,
    total_assets: int,
    total_shares: int,
) -> int:
    if not constraints.withdrawals_enabled:
        return 0
    liquid_shares = to_shares(constraints.withdraw_liquidity, total_assets, total_shares, Rounding.DOWN)
    return min(owner_shares, liquid_shares)


def capacity_figures(
    constraints: MarketConstraints,
    owner_shares: int,
    total_assets: int,
    total_shares: int,
    deposit_cap: Optional[int],
) -> CapacityFigures:
    return CapacityFigures(
        max_deposit_assets=max_deposit(constraints, total_assets, deposit_cap),
        max_mint_shares=max_mint(constraints, total_assets, total_shares, deposit_cap),
        max_withdraw_assets=max_withdraw(constraints, owner_shares, total_assets, total_shares),
        max_redeem_shares=max_redeem(constraints, owner_shares, total_assets, total_shares),
    )
