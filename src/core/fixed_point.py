"""Fixed-point integer helpers for the vault kernel.

Every function is stateless and operates on plain Python ints. Rounding is
always explicit: `*_down` floors, `*_up` ceils, `ray_mul`/`ray_div` round
half-up the way the lending market's WadRayMath library does. `MAX_UINT256`
is the ledger's, re-exported here for the kernels.
"""

from __future__ import annotations

from ..state.balances import MAX_UINT256

RAY: int = 10**27
HALF_RAY: int = RAY // 2


def _check_non_negative(*values: int) -> None:
    for v in values:
        if not isinstance(v, int) or isinstance(v, bool):
            raise TypeError(f"expected int, got {type(v).__name__}")
        if v < 0:
            raise ValueError(f"expected non-negative int, got {v}")


def mul_div_down(x: int, y: int, denominator: int) -> int:
    """``floor(x * y / denominator)``."""
    _check_non_negative(x, y, denominator)
    if denominator == 0:
        raise ZeroDivisionError("mul_div_down: zero denominator")
    return (x * y) // denominator


def mul_div_up(x: int, y: int, denominator: int) -> int:
    """``ceil(x * y / denominator)``."""
    _check_non_negative(x, y, denominator)
    if denominator == 0:
        raise ZeroDivisionError("mul_div_up: zero denominator")
    return (x * y + denominator - 1) // denominator


def ray_mul(a: int, b: int) -> int:
    """``a * b / RAY`` rounded half-up."""
    _check_non_negative(a, b)
    return (a * b + HALF_RAY) // RAY


def ray_div(a: int, b: int) -> int:
    """``a * RAY / b`` rounded half-up."""
    _check_non_negative(a, b)
    if b == 0:
        raise ZeroDivisionError("ray_div: zero divisor")
    return (a * RAY + b // 2) // b


def ray_mul_down(a: int, b: int) -> int:
    return mul_div_down(a, b, RAY)


def ray_div_down(a: int, b: int) -> int:
    return mul_div_down(a, RAY, b)


def ray_div_up(a: int, b: int) -> int:
    return mul_div_up(a, RAY, b)


def saturating_sub(a: int, b: int) -> int:
    """``max(a - b, 0)``."""
    return a - b if a > b else 0
