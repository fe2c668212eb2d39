"""
Per-token balance table.

Implements BalanceTable[TokenId][Address] -> Amount, kept sparse: a balance
that reaches zero is dropped, so `holders(token)` lists only live holders.
"""

from typing import Dict, List


# Type aliases
Address = str  # 20-byte hex string (0x...)
TokenId = str  # token contract address (0x...)
Amount = int  # Non-negative integer (arbitrary precision)

ZERO_ADDRESS = "0x" + "00" * 20
MAX_UINT256 = 2**256 - 1


class BalanceTable:
    """
    Balance table mapping token -> holder -> amount.

    Iteration order of the underlying dicts is never relied on; `holders`
    returns addresses sorted.
    """

    def __init__(self):
        self._by_token: Dict[TokenId, Dict[Address, Amount]] = {}

    def get(self, holder: Address, token: TokenId) -> Amount:
        """Balance of `holder` in `token`; 0 when absent."""
        return self._by_token.get(token, {}).get(holder, 0)

    def set(self, holder: Address, token: TokenId, amount: Amount) -> None:
        """
        Overwrite the balance of `holder` in `token`.

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError(f"Balance cannot be negative: {amount}")
        accounts = self._by_token.setdefault(token, {})
        if amount:
            accounts[holder] = amount
            return
        accounts.pop(holder, None)
        if not accounts:
            del self._by_token[token]

    def add(self, holder: Address, token: TokenId, delta: Amount) -> None:
        """
        Move the balance by `delta` (may be negative).

        Raises:
            ValueError: If the resulting balance would be negative
        """
        current = self.get(holder, token)
        if current + delta < 0:
            raise ValueError(f"Insufficient balance: {current} + {delta} < 0")
        self.set(holder, token, current + delta)

    def subtract(self, holder: Address, token: TokenId, delta: Amount) -> None:
        if delta < 0:
            raise ValueError(f"Delta must be non-negative: {delta}")
        self.add(holder, token, -delta)

    def holders(self, token: TokenId) -> List[Address]:
        return sorted(self._by_token.get(token, {}))

    def snapshot(self) -> Dict[TokenId, Dict[Address, Amount]]:
        return {token: dict(accounts) for token, accounts in self._by_token.items()}

    def restore(self, snap: Dict[TokenId, Dict[Address, Amount]]) -> None:
        self._by_token = {token: dict(accounts) for token, accounts in snap.items()}

    def __repr__(self) -> str:
        entries = sum(len(accounts) for accounts in self._by_token.values())
        return f"BalanceTable({len(self._by_token)} tokens, {entries} entries)"
