"""
Typed view over the external lending market.

`ExternalMarketAdapter` only translates: it reads the market's reserve state
and the vault's rebasing position and hands them back as value types. Every
read goes to the market; nothing is cached.
"""

from __future__ import annotations

from typing import Protocol

from ..state.tokens import TokenLedger
from .conversion import position_value
from .types import ReserveConfig, ReserveData, ReserveView


class MarketError(Exception):
    """Raised when the market rejects a call; `reason` mirrors the market's error string."""

    code = "MarketError"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class LendingMarket(Protocol):
    """The slice of the lending market's interface the vault consumes."""

    address: str

    def supply(self, asset: str, amount: int, on_behalf_of: str, *, sender: str) -> None: ...

    def withdraw(self, asset: str, amount: int, to: str, *, sender: str) -> int: ...

    def get_reserve_data(self, asset: str) -> ReserveData: ...

    def get_reserve_normalized_income(self, asset: str) -> int: ...

    def scaled_balance_of(self, asset: str, holder: str) -> int: ...

    def scaled_total_supply(self, asset: str) -> int: ...


class ExternalMarketAdapter:
    def __init__(self, market: LendingMarket, ledger: TokenLedger, asset: str, holder: str) -> None:
        self.market = market
        self.ledger = ledger
        self.asset = asset
        self.holder = holder

    def reserve_data(self) -> ReserveData:
        return self.market.get_reserve_data(self.asset)

    def receipt_token(self) -> str:
        return self.reserve_data().receipt_token

    def configuration(self) -> ReserveConfig:
        return self.reserve_data().configuration

    def normalized_income(self) -> int:
        return self.market.get_reserve_normalized_income(self.asset)

    def scaled_position(self) -> int:
        return self.market.scaled_balance_of(self.asset, self.holder)

    def position_value(self) -> int:
        """The holder's rebasing balance, ``scaled * normalized_income / RAY`` rounded down."""
        return position_value(self.scaled_position(), self.normalized_income())

    def liquidity_held_by(self, receipt_token: str) -> int:
        """Underlying sitting in `receipt_token`'s custody (not lent out)."""
        return self.ledger.balance_of(self.asset, receipt_token)

    def available_liquidity(self) -> int:
        return self.liquidity_held_by(self.receipt_token())

    def reserve_view(self) -> ReserveView:
        data = self.reserve_data()
        return ReserveView(
            configuration=data.configuration,
            liquidity_index=data.liquidity_index,
            scaled_total_supply=self.market.scaled_total_supply(self.asset),
            accrued_to_treasury=data.accrued_to_treasury,
            available_liquidity=self.liquidity_held_by(data.receipt_token),
        )
