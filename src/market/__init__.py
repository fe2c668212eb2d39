"""
In-memory Aave-style lending market used by tests and the invariant harness.
"""

from ..core.market_adapter import MarketError
from .simulated import MARKET_ADDRESS, SimulatedLendingMarket

__all__ = [
    "MARKET_ADDRESS",
    "MarketError",
    "SimulatedLendingMarket",
]
