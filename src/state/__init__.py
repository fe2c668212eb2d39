"""
Token state shared by the vault, the lending market and the harness.
"""

from .balances import MAX_UINT256, ZERO_ADDRESS, BalanceTable
from .tokens import InsufficientAllowance, InsufficientBalance, LedgerError, TokenLedger

__all__ = [
    "MAX_UINT256",
    "ZERO_ADDRESS",
    "BalanceTable",
    "TokenLedger",
    "LedgerError",
    "InsufficientBalance",
    "InsufficientAllowance",
]
