"""
Where the vault's idle assets live.

Two variants share one capability set (structural typing, no base class):

- `PassthroughCash`: assets stay in the vault's own custody; invest/divest
  move nothing.
- `LendingMarketStrategy`: invest supplies into the lending market, divest
  withdraws from it, and the idle balance is always reported as zero
  (fully-invested policy; `skim` sweeps anything that shows up in custody).

A divest that the market rejects or under-fills is a hard failure
(`MarketDivestError`); there is no partial fulfillment.
"""

from __future__ import annotations

import logging
from typing import List, Protocol

from ..state.tokens import TokenLedger
from .capacity import lending_constraints
from .errors import MarketDivestError
from .fixed_point import MAX_UINT256
from .guards import Journaled
from .market_adapter import ExternalMarketAdapter, MarketError
from .types import MarketConstraints, StrategyKind

logger = logging.getLogger(__name__)


class StrategyAdapter(Protocol):
    kind: StrategyKind

    def invest(self, assets: int) -> None: ...

    def divest(self, assets: int) -> int: ...

    def idle_balance(self) -> int: ...

    def total_assets(self) -> int: ...

    def constraints(self) -> MarketConstraints: ...

    def journaled(self) -> List[Journaled]: ...


class PassthroughCash:
    kind = StrategyKind.CASH

    def __init__(self, ledger: TokenLedger, asset: str, vault_address: str) -> None:
        self.ledger = ledger
        self.asset = asset
        self.vault_address = vault_address

    def invest(self, assets: int) -> None:
        return None

    def divest(self, assets: int) -> int:
        idle = self.idle_balance()
        if assets > idle:
            raise MarketDivestError(assets, reason=f"custody holds {idle}")
        return assets

    def idle_balance(self) -> int:
        return self.ledger.balance_of(self.asset, self.vault_address)

    def total_assets(self) -> int:
        return self.idle_balance()

    def constraints(self) -> MarketConstraints:
        return MarketConstraints(
            deposits_enabled=True,
            withdrawals_enabled=True,
            deposit_headroom=MAX_UINT256,
            withdraw_liquidity=self.idle_balance(),
        )

    def journaled(self) -> List[Journaled]:
        return []


class LendingMarketStrategy:
    kind = StrategyKind.LENDING

    def __init__(self, adapter: ExternalMarketAdapter) -> None:
        self.adapter = adapter

    @property
    def vault_address(self) -> str:
        return self.adapter.holder

    def invest(self, assets: int) -> None:
        if assets == 0:
            return
        self.adapter.market.supply(self.adapter.asset, assets, self.vault_address, sender=self.vault_address)
        logger.debug("invested %d into market %s", assets, self.adapter.market.address)

    def divest(self, assets: int) -> int:
        if assets == 0:
            return 0
        try:
            returned = self.adapter.market.withdraw(
                self.adapter.asset, assets, self.vault_address, sender=self.vault_address
            )
        except MarketError as exc:
            raise MarketDivestError(assets, reason=exc.reason) from exc
        if returned < assets:
            raise MarketDivestError(assets, returned)
        logger.debug("divested %d from market %s", returned, self.adapter.market.address)
        return returned

    def idle_balance(self) -> int:
        return 0

    def total_assets(self) -> int:
        return self.adapter.position_value()

    def constraints(self) -> MarketConstraints:
        return lending_constraints(self.adapter.reserve_view())

    def journaled(self) -> List[Journaled]:
        market = self.adapter.market
        return [market] if isinstance(market, Journaled) else []


def make_strategy(
    kind: StrategyKind,
    *,
    ledger: TokenLedger,
    asset: str,
    vault_address: str,
    adapter: ExternalMarketAdapter | None = None,
) -> StrategyAdapter:
    if kind is StrategyKind.CASH:
        return PassthroughCash(ledger, asset, vault_address)
    if kind is StrategyKind.LENDING:
        if adapter is None:
            raise ValueError("lending strategy requires a market adapter")
        return LendingMarketStrategy(adapter)
    raise ValueError(f"unsupported strategy kind: {kind!r}")
