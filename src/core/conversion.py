"""
Asset <-> share conversion with explicit rounding direction.

Algorithm Design:
- Type: Fixed-Point Integer Arithmetic / Directed Rounding
- Time Complexity: O(1)
- Invariant: every conversion rounds in the vault's favor, so no
  deposit/redeem or mint/withdraw round trip returns more than was paid in.

A virtual offset of one unit on each side of the ratio,

    shares = assets * (total_shares + 1) / (total_assets + 1)

keeps the empty vault at 1:1 and the denominator non-zero.

The four intent helpers (`shares_for_deposit`, `assets_for_mint`,
`shares_for_withdraw`, `assets_for_redeem`) are what the vault calls; each
fixes the rounding direction for its operation.
"""

from __future__ import annotations

from .fixed_point import mul_div_down, mul_div_up, ray_mul_down
from .types import Rounding

VIRTUAL_SHARES = 1
VIRTUAL_ASSETS = 1


def to_shares(assets: int, total_assets: int, total_shares: int, rounding: Rounding) -> int:
    num = total_shares + VIRTUAL_SHARES
    den = total_assets + VIRTUAL_ASSETS
    if rounding is Rounding.UP:
        return mul_div_up(assets, num, den)
    return mul_div_down(assets, num, den)


def to_assets(shares: int, total_assets: int, total_shares: int, rounding: Rounding) -> int:
    num = total_assets + VIRTUAL_ASSETS
    den = total_shares + VIRTUAL_SHARES
    if rounding is Rounding.UP:
        return mul_div_up(shares, num, den)
    return mul_div_down(shares, num, den)


def shares_for_deposit(assets: int, total_assets: int, total_shares: int) -> int:
    """Shares granted for `assets` deposited (rounds down)."""
    return to_shares(assets, total_assets, total_shares, Rounding.DOWN)


def assets_for_mint(shares: int, total_assets: int, total_shares: int) -> int:
    """Assets charged to mint `shares` (rounds up)."""
    return to_assets(shares, total_assets, total_shares, Rounding.UP)


def shares_for_withdraw(assets: int, total_assets: int, total_shares: int) -> int:
    """Shares burned to pay out `assets` (rounds up)."""
    return to_shares(assets, total_assets, total_shares, Rounding.UP)


def assets_for_redeem(shares: int, total_assets: int, total_shares: int) -> int:
    """Assets paid out for `shares` redeemed (rounds down)."""
    return to_assets(shares, total_assets, total_shares, Rounding.DOWN)


def position_value(scaled_balance: int, normalized_income: int) -> int:
    """Current value of a rebasing position: ``scaled * index / RAY`` rounded down."""
    return ray_mul_down(scaled_balance, normalized_income)
