"""
Lending vault: an ERC-4626-style share ledger over a yield-bearing strategy.

This is the imperative shell around the pure pieces in this package:
- `conversion` prices every asset/share pair with a fixed rounding direction,
- `capacity` bounds every entry point by the market's current state,
- the strategy (cash or lending market) performs the actual asset movement.

Every mutating entry point runs under the vault's reentrancy lock and inside
an atomic section: capacity is validated against fresh market state before
value moves, and any failure restores every journaled participant.

Ordering:
- deposit/mint: pull assets -> mint shares -> invest into the strategy;
- withdraw/redeem: divest from the strategy -> burn shares -> pay out, so a
  market failure aborts before any share is burned.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional

from ..state.balances import ZERO_ADDRESS
from ..state.tokens import TokenLedger
from . import capacity
from .conversion import (
    assets_for_mint,
    assets_for_redeem,
    shares_for_deposit,
    shares_for_withdraw,
)
from .errors import (
    CapacityExceededError,
    InvalidAssetError,
    NullAddressError,
    UnauthorizedError,
)
from .guards import Journaled, Lifecycle, ReentrancyLock, atomic
from .market_adapter import ExternalMarketAdapter, LendingMarket
from .strategies import StrategyAdapter, make_strategy
from .types import CapacityFigures, Event, EventRecord, StrategyKind, VaultStatus

logger = logging.getLogger(__name__)

VAULT_ADDRESS = "0x" + "7a" * 20
# Shares minted by the bootstrap deposit are parked here and never move.
DEAD_ADDRESS = "0x000000000000000000000000000000000000dEaD"

Authorizer = Callable[[str, str], bool]


def role_authorizer(*admins: str) -> Authorizer:
    """Authorizer that allows every privileged action to the listed addresses."""
    allowed = frozenset(admins)

    def _is_authorized(caller: str, action: str) -> bool:
        return caller in allowed

    return _is_authorized


def _require_amount(value: int, *, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")
    if value < 0:
        raise ValueError(f"{name} must be non-negative: {value}")
    return value


def _require_address(value: str, *, name: str) -> str:
    if not value or value == ZERO_ADDRESS:
        raise NullAddressError(f"{name} is the zero address")
    return value


class EventLog:
    def __init__(self) -> None:
        self._records: List[EventRecord] = []

    def emit(self, event: Event, **args: Any) -> None:
        self._records.append(EventRecord(event=event, args=args))

    def records(self, event: Event | None = None) -> List[EventRecord]:
        if event is None:
            return list(self._records)
        return [r for r in self._records if r.event is event]

    def snapshot(self) -> int:
        return len(self._records)

    def restore(self, snap: int) -> None:
        del self._records[snap:]


class LendingVault:
    def __init__(self, ledger: TokenLedger, *, address: str = VAULT_ADDRESS) -> None:
        self.ledger = ledger
        self.address = _require_address(address, name="address")
        self.events = EventLog()

        self.name = ""
        self.symbol = ""
        self.asset = ZERO_ADDRESS
        self.decimals = 0
        self.market: Optional[LendingMarket] = None
        self.receipt_token = ZERO_ADDRESS
        self.strategy: Optional[StrategyAdapter] = None
        self.deposit_cap: Optional[int] = None

        self._authorizer: Authorizer = lambda caller, action: False
        self._lock = ReentrancyLock()
        self._lifecycle = Lifecycle()

    # -- lifecycle ---------------------------------------------------------

    @property
    def status(self) -> VaultStatus:
        return self._lifecycle.status

    @property
    def paused(self) -> bool:
        return self._lifecycle.status is VaultStatus.PAUSED

    @property
    def locked(self) -> bool:
        return self._lock.locked

    def initialize(
        self,
        *,
        authorizer: Authorizer,
        asset: str,
        name: str,
        symbol: str,
        funding_account: str,
        first_deposit_amount: int,
        market: Optional[LendingMarket] = None,
        strategy: StrategyKind = StrategyKind.LENDING,
        deposit_cap: Optional[int] = None,
        decimals: Optional[int] = None,
    ) -> int:
        """One-time setup plus the mandatory bootstrap deposit.

        Returns the shares minted by the bootstrap deposit.
        """
        with self._lock.acquire("initialize"):
            with atomic(self._base_journal(), label="initialize"):
                self._lifecycle.initialize()
                _require_address(asset, name="asset")
                _require_address(funding_account, name="funding_account")
                _require_amount(first_deposit_amount, name="first_deposit_amount")
                if first_deposit_amount == 0:
                    raise ValueError("first_deposit_amount must be non-zero")
                if deposit_cap is not None:
                    _require_amount(deposit_cap, name="deposit_cap")

                adapter = None
                if strategy is StrategyKind.LENDING:
                    if market is None:
                        raise NullAddressError("market is the zero address")
                    _require_address(market.address, name="market")
                    reserve = market.get_reserve_data(asset)
                    if reserve.receipt_token == ZERO_ADDRESS:
                        raise InvalidAssetError(f"market has no reserve for {asset}")
                    adapter = ExternalMarketAdapter(market, self.ledger, asset, self.address)
                    self.receipt_token = reserve.receipt_token
                    self.decimals = reserve.configuration.decimals if decimals is None else decimals
                else:
                    self.decimals = 6 if decimals is None else decimals

                self._authorizer = authorizer
                self.asset = asset
                self.name = name
                self.symbol = symbol
                self.market = market
                self.deposit_cap = deposit_cap
                self.strategy = make_strategy(
                    strategy, ledger=self.ledger, asset=asset, vault_address=self.address, adapter=adapter
                )

                self.events.emit(Event.INITIALIZED, asset=asset, strategy=strategy.value)
                if market is not None:
                    self.events.emit(Event.POOL_SET, market=market.address)
                if adapter is not None:
                    self.events.emit(Event.RECEIPT_TOKEN_SET, token=self.receipt_token)

                # The strategy's market participates from here on.
                with atomic(self.strategy.journaled(), label="bootstrap deposit"):
                    limit = self.max_deposit(DEAD_ADDRESS)
                    if first_deposit_amount > limit:
                        raise CapacityExceededError("initialize", first_deposit_amount, limit)
                    shares = self.preview_deposit(first_deposit_amount)
                    self._deposit(funding_account, DEAD_ADDRESS, first_deposit_amount, shares)

        logger.info(
            "initialized vault %s (%s) asset=%s strategy=%s bootstrap_shares=%d",
            self.name, self.symbol, asset, strategy.value, shares,
        )
        return shares

    def snapshot(self) -> tuple:
        return (
            self.name, self.symbol, self.asset, self.decimals, self.market,
            self.receipt_token, self.strategy, self.deposit_cap, self._authorizer,
        )

    def restore(self, snap: tuple) -> None:
        (
            self.name, self.symbol, self.asset, self.decimals, self.market,
            self.receipt_token, self.strategy, self.deposit_cap, self._authorizer,
        ) = snap

    def _base_journal(self) -> List[Journaled]:
        return [self, self.ledger, self._lifecycle, self.events]

    def _journal(self) -> List[Journaled]:
        participants = self._base_journal()
        if self.strategy is not None:
            participants.extend(self.strategy.journaled())
        return participants

    @contextmanager
    def _entry(self, operation: str, *, require_active: bool = True) -> Iterator[None]:
        with self._lock.acquire(operation):
            if require_active:
                self._lifecycle.require_active()
            else:
                self._lifecycle.require_initialized()
            with atomic(self._journal(), label=operation):
                yield

    def _require_authorized(self, caller: str, action: str) -> None:
        if not self._authorizer(caller, action):
            raise UnauthorizedError(caller, action)

    # -- administration ----------------------------------------------------

    def pause(self, caller: str) -> None:
        with self._entry("pause", require_active=False):
            self._require_authorized(caller, "pause")
            if not self.paused:
                self._lifecycle.set_paused(True)
                self.events.emit(Event.PAUSED, account=caller)
                logger.info("vault %s paused by %s", self.address, caller)

    def unpause(self, caller: str) -> None:
        with self._entry("unpause", require_active=False):
            self._require_authorized(caller, "unpause")
            if self.paused:
                self._lifecycle.set_paused(False)
                self.events.emit(Event.UNPAUSED, account=caller)
                logger.info("vault %s unpaused by %s", self.address, caller)

    def set_deposit_cap(self, caller: str, cap: Optional[int]) -> None:
        with self._entry("set_deposit_cap", require_active=False):
            self._require_authorized(caller, "set_deposit_cap")
            if cap is not None:
                _require_amount(cap, name="cap")
            self.deposit_cap = cap
            self.events.emit(Event.DEPOSIT_CAP_SET, cap=cap)

    # -- accounting reads --------------------------------------------------

    def total_assets(self) -> int:
        """Current value of the strategy position, read fresh from the market."""
        if self.strategy is None:
            return 0
        return self.strategy.total_assets()

    def total_supply(self) -> int:
        return self.ledger.total_supply(self.address)

    def balance_of(self, holder: str) -> int:
        return self.ledger.balance_of(self.address, holder)

    def allowance(self, owner: str, spender: str) -> int:
        return self.ledger.allowance(self.address, owner, spender)

    def convert_to_shares(self, assets: int) -> int:
        return shares_for_deposit(_require_amount(assets, name="assets"), self.total_assets(), self.total_supply())

    def convert_to_assets(self, shares: int) -> int:
        return assets_for_redeem(_require_amount(shares, name="shares"), self.total_assets(), self.total_supply())

    def preview_deposit(self, assets: int) -> int:
        return shares_for_deposit(_require_amount(assets, name="assets"), self.total_assets(), self.total_supply())

    def preview_mint(self, shares: int) -> int:
        return assets_for_mint(_require_amount(shares, name="shares"), self.total_assets(), self.total_supply())

    def preview_withdraw(self, assets: int) -> int:
        return shares_for_withdraw(_require_amount(assets, name="assets"), self.total_assets(), self.total_supply())

    def preview_redeem(self, shares: int) -> int:
        return assets_for_redeem(_require_amount(shares, name="shares"), self.total_assets(), self.total_supply())

    # -- capacity ----------------------------------------------------------

    def max_deposit(self, receiver: str) -> int:
        if self.strategy is None:
            return 0
        return capacity.max_deposit(self.strategy.constraints(), self.total_assets(), self.deposit_cap)

    def max_mint(self, receiver: str) -> int:
        if self.strategy is None:
            return 0
        return capacity.max_mint(
            self.strategy.constraints(), self.total_assets(), self.total_supply(), self.deposit_cap
        )

    def max_withdraw(self, owner: str) -> int:
        if self.strategy is None:
            return 0
        return capacity.max_withdraw(
            self.strategy.constraints(), self.balance_of(owner), self.total_assets(), self.total_supply()
        )

    def max_redeem(self, owner: str) -> int:
        if self.strategy is None:
            return 0
        return capacity.max_redeem(
            self.strategy.constraints(), self.balance_of(owner), self.total_assets(), self.total_supply()
        )

    def capacity(self, holder: str) -> CapacityFigures:
        if self.strategy is None:
            return CapacityFigures(0, 0, 0, 0)
        return capacity.capacity_figures(
            self.strategy.constraints(),
            self.balance_of(holder),
            self.total_assets(),
            self.total_supply(),
            self.deposit_cap,
        )

    # -- entry points ------------------------------------------------------

    def deposit(self, assets: int, receiver: str, *, sender: str) -> int:
        """Deposit exactly `assets`; returns the shares minted to `receiver`."""
        with self._entry("deposit"):
            _require_amount(assets, name="assets")
            _require_address(receiver, name="receiver")
            limit = self.max_deposit(receiver)
            if assets > limit:
                raise CapacityExceededError("deposit", assets, limit)
            shares = self.preview_deposit(assets)
            self._deposit(sender, receiver, assets, shares)
        return shares

    def mint(self, shares: int, receiver: str, *, sender: str) -> int:
        """Mint exactly `shares`; returns the assets pulled from `sender`."""
        with self._entry("mint"):
            _require_amount(shares, name="shares")
            _require_address(receiver, name="receiver")
            limit = self.max_mint(receiver)
            if shares > limit:
                raise CapacityExceededError("mint", shares, limit)
            assets = self.preview_mint(shares)
            self._deposit(sender, receiver, assets, shares)
        return assets

    def withdraw(self, assets: int, receiver: str, owner: str, *, sender: str) -> int:
        """Withdraw exactly `assets` to `receiver`; returns the shares burned from `owner`."""
        with self._entry("withdraw"):
            _require_amount(assets, name="assets")
            _require_address(receiver, name="receiver")
            _require_address(owner, name="owner")
            limit = self.max_withdraw(owner)
            if assets > limit:
                raise CapacityExceededError("withdraw", assets, limit)
            shares = self.preview_withdraw(assets)
            self._withdraw(sender, receiver, owner, assets, shares)
        return shares

    def redeem(self, shares: int, receiver: str, owner: str, *, sender: str) -> int:
        """Redeem exactly `shares` of `owner`; returns the assets paid to `receiver`."""
        with self._entry("redeem"):
            _require_amount(shares, name="shares")
            _require_address(receiver, name="receiver")
            _require_address(owner, name="owner")
            limit = self.max_redeem(owner)
            if shares > limit:
                raise CapacityExceededError("redeem", shares, limit)
            assets = self.preview_redeem(shares)
            self._withdraw(sender, receiver, owner, assets, shares)
        return assets

    def skim(self) -> int:
        """Sweep uninvested custody balance into the strategy; returns the amount swept.

        Allowed while paused. Sweeps only what the market currently accepts.
        """
        with self._entry("skim", require_active=False):
            idle = self.ledger.balance_of(self.asset, self.address) - self.strategy.idle_balance()
            constraints = self.strategy.constraints()
            amount = min(idle, constraints.deposit_headroom) if constraints.deposits_enabled else 0
            if amount <= 0:
                return 0
            self.strategy.invest(amount)
            self.events.emit(Event.SKIM, amount=amount)
            logger.debug("skimmed %d into strategy", amount)
        return amount

    def transfer(self, to: str, shares: int, *, sender: str) -> None:
        with self._entry("transfer", require_active=False):
            _require_amount(shares, name="shares")
            _require_address(to, name="to")
            self.ledger.transfer(self.address, sender, to, shares)

    def approve(self, spender: str, shares: int, *, owner: str) -> None:
        with self._entry("approve", require_active=False):
            _require_address(spender, name="spender")
            self.ledger.approve(self.address, owner, spender, _require_amount(shares, name="shares"))

    # -- internals ---------------------------------------------------------

    def _deposit(self, sender: str, receiver: str, assets: int, shares: int) -> None:
        self.ledger.transfer(self.asset, sender, self.address, assets)
        self.ledger.mint(self.address, receiver, shares)
        self.strategy.invest(assets)
        self.events.emit(Event.DEPOSIT, sender=sender, owner=receiver, assets=assets, shares=shares)
        logger.debug("deposit sender=%s receiver=%s assets=%d shares=%d", sender, receiver, assets, shares)

    def _withdraw(self, sender: str, receiver: str, owner: str, assets: int, shares: int) -> None:
        if sender != owner:
            self.ledger.spend_allowance(self.address, owner, sender, shares)
        self.strategy.divest(assets)
        self.ledger.burn(self.address, owner, shares)
        self.ledger.transfer(self.asset, self.address, receiver, assets)
        self.events.emit(
            Event.WITHDRAW, sender=sender, receiver=receiver, owner=owner, assets=assets, shares=shares
        )
        logger.debug(
            "withdraw sender=%s receiver=%s owner=%s assets=%d shares=%d", sender, receiver, owner, assets, shares
        )
