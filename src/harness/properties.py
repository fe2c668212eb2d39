"""State properties checked after every harness step.

Each function returns True when the property holds on an `Observation`, and
`check_all()` returns the list of violated property ids (empty = all pass).

Step properties that compare a before/after pair (monotonic valuation,
round-trip, capacity consistency, pause gating) live in the driver, since
they depend on the action that was just applied.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..core.conversion import assets_for_mint, assets_for_redeem, shares_for_withdraw
from ..core.types import CapacityFigures


@dataclass(frozen=True)
class Observation:
    total_assets: int
    total_supply: int
    share_balances: Dict[str, int]           # every non-zero holder on the share ledger
    model_shares: Dict[str, int]             # driver's expected share balances
    asset_balances: Dict[str, int]           # tracked identities' underlying balances
    model_assets: Dict[str, int]             # driver's expected underlying balances
    capacities: Dict[str, CapacityFigures]   # tracked identities
    locked: bool
    deposits_open: bool = True               # reserve active, not frozen, not paused
    withdrawals_open: bool = True            # reserve active, not paused
    withdraw_liquidity: Optional[int] = None  # underlying the strategy can hand back; None = unbounded


def prop_supply_matches_balances(o: Observation) -> bool:
    return o.total_supply == sum(o.share_balances.values())


def prop_conservation(o: Observation) -> bool:
    claims = sum(
        assets_for_redeem(shares, o.total_assets, o.total_supply) for shares in o.share_balances.values()
    )
    return o.total_assets >= claims


def prop_model_shares(o: Observation) -> bool:
    return all(o.share_balances.get(h, 0) == expected for h, expected in o.model_shares.items())


def prop_model_assets(o: Observation) -> bool:
    return all(o.asset_balances.get(h, 0) == expected for h, expected in o.model_assets.items())


def prop_capacity_within_balance(o: Observation) -> bool:
    for holder, cap in o.capacities.items():
        shares = o.share_balances.get(holder, 0)
        if cap.max_redeem_shares > shares:
            return False
        if cap.max_withdraw_assets > assets_for_redeem(shares, o.total_assets, o.total_supply):
            return False
        # Withdrawing the full max never burns more shares than the holder owns.
        if shares_for_withdraw(cap.max_withdraw_assets, o.total_assets, o.total_supply) > shares:
            return False
    return True


def prop_mint_priced_within_deposit(o: Observation) -> bool:
    for cap in o.capacities.values():
        if cap.max_deposit_assets == 0 and cap.max_mint_shares != 0:
            return False
        if cap.max_mint_shares == 0 or cap.max_deposit_assets == cap.max_mint_shares:
            continue
        if assets_for_mint(cap.max_mint_shares, o.total_assets, o.total_supply) > cap.max_deposit_assets:
            return False
    return True


def prop_market_gating(o: Observation) -> bool:
    for cap in o.capacities.values():
        if not o.deposits_open and (cap.max_deposit_assets or cap.max_mint_shares):
            return False
        if not o.withdrawals_open and (cap.max_withdraw_assets or cap.max_redeem_shares):
            return False
    return True


def prop_capacity_within_liquidity(o: Observation) -> bool:
    if o.withdraw_liquidity is None:
        return True
    return all(cap.max_withdraw_assets <= o.withdraw_liquidity for cap in o.capacities.values())


def prop_lock_released(o: Observation) -> bool:
    return not o.locked


PROPERTY_REGISTRY: Dict[str, Callable[[Observation], bool]] = {
    "supply_matches_balances": prop_supply_matches_balances,
    "conservation": prop_conservation,
    "model_shares": prop_model_shares,
    "model_assets": prop_model_assets,
    "capacity_within_balance": prop_capacity_within_balance,
    "mint_priced_within_deposit": prop_mint_priced_within_deposit,
    "market_gating": prop_market_gating,
    "capacity_within_liquidity": prop_capacity_within_liquidity,
    "lock_released": prop_lock_released,
}


def check_all(o: Observation) -> list[str]:
    """Return list of violated property ids (empty = all pass)."""
    return [prop_id for prop_id, check_fn in PROPERTY_REGISTRY.items() if not check_fn(o)]
