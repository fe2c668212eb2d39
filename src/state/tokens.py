"""
Fungible-token ledger (ERC-20 semantics) shared by every simulated contract.

One `TokenLedger` plays the role of the chain's token state: the underlying
asset, the vault share token and anything else that moves between addresses
are all entries keyed by token id.
"""

from __future__ import annotations

from typing import Dict, List, Tuple

from .balances import MAX_UINT256, ZERO_ADDRESS, Address, Amount, BalanceTable, TokenId


class LedgerError(Exception):
    """Base class for token-ledger failures."""

    code = "LedgerError"


class InsufficientBalance(LedgerError):
    code = "InsufficientBalance"


class InsufficientAllowance(LedgerError):
    code = "InsufficientAllowance"


def _require_amount(amount: int, *, name: str = "amount") -> int:
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise TypeError(f"{name} must be an int")
    if amount < 0:
        raise ValueError(f"{name} must be non-negative: {amount}")
    return amount


class TokenLedger:
    """Balances, total supplies and allowances for any number of tokens."""

    def __init__(self) -> None:
        self._balances = BalanceTable()
        self._supply: Dict[TokenId, Amount] = {}
        self._allowances: Dict[Tuple[TokenId, Address, Address], Amount] = {}

    # -- reads -----------------------------------------------------------

    def balance_of(self, token: TokenId, holder: Address) -> Amount:
        return self._balances.get(holder, token)

    def total_supply(self, token: TokenId) -> Amount:
        return self._supply.get(token, 0)

    def allowance(self, token: TokenId, owner: Address, spender: Address) -> Amount:
        return self._allowances.get((token, owner, spender), 0)

    def holders(self, token: TokenId) -> List[Address]:
        """Addresses with a non-zero balance, sorted for deterministic iteration."""
        return self._balances.holders(token)

    # -- writes ----------------------------------------------------------

    def mint(self, token: TokenId, to: Address, amount: Amount) -> None:
        _require_amount(amount)
        if to == ZERO_ADDRESS:
            raise LedgerError("mint to the zero address")
        self._balances.add(to, token, amount)
        self._supply[token] = self.total_supply(token) + amount

    def burn(self, token: TokenId, holder: Address, amount: Amount) -> None:
        _require_amount(amount)
        current = self.balance_of(token, holder)
        if amount > current:
            raise InsufficientBalance(f"burn {amount} exceeds balance {current} of {holder}")
        self._balances.subtract(holder, token, amount)
        self._supply[token] = self.total_supply(token) - amount

    def transfer(self, token: TokenId, sender: Address, to: Address, amount: Amount) -> None:
        _require_amount(amount)
        if to == ZERO_ADDRESS:
            raise LedgerError("transfer to the zero address")
        current = self.balance_of(token, sender)
        if amount > current:
            raise InsufficientBalance(f"transfer {amount} exceeds balance {current} of {sender}")
        self._balances.subtract(sender, token, amount)
        self._balances.add(to, token, amount)

    def approve(self, token: TokenId, owner: Address, spender: Address, amount: Amount) -> None:
        _require_amount(amount)
        if amount == 0:
            self._allowances.pop((token, owner, spender), None)
        else:
            self._allowances[(token, owner, spender)] = amount

    def spend_allowance(self, token: TokenId, owner: Address, spender: Address, amount: Amount) -> None:
        """Decrement `spender`'s allowance over `owner`; an unlimited allowance is left untouched."""
        _require_amount(amount)
        current = self.allowance(token, owner, spender)
        if current == MAX_UINT256:
            return
        if amount > current:
            raise InsufficientAllowance(f"allowance {current} of {spender} over {owner} is below {amount}")
        self.approve(token, owner, spender, current - amount)

    # -- journaling --------------------------------------------------------

    def snapshot(self) -> tuple:
        return (self._balances.snapshot(), dict(self._supply), dict(self._allowances))

    def restore(self, snap: tuple) -> None:
        balances, supply, allowances = snap
        self._balances.restore(balances)
        self._supply = dict(supply)
        self._allowances = dict(allowances)
