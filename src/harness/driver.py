"""Message-driven invariant harness for the lending vault.

The driver owns a complete simulated world (token ledger, lending market,
vault, a set of funded holders) and replays a stream of `ActionMsg`s against
it. Alongside the real state it keeps an explicit model of what every holder
should own, predicted from capacity and preview queries taken *before* each
call. After every step it checks:

- the state properties in `properties.PROPERTY_REGISTRY`;
- per-action expectations: capacity consistency (within max* must succeed,
  above must fail with CapacityExceeded), pause gating, preview equality,
  strict valuation moves on profit/loss, non-profitable round trips.

With the lending strategy, market actions also move the reserve under the
vault: flag toggles, supply caps, treasury accrual and borrowed-away
liquidity. The observation reads those gates straight from the market, so
every max* figure is checked against them after each step.

A run is fully determined by its `HarnessConfig` (seed included), so any
failure replays from the seed printed in the report.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from ..core.config import HarnessConfig, VaultConfig
from ..core.conversion import position_value
from ..core.errors import CapacityExceededError, UnauthorizedError, VaultError, VaultPausedError
from ..core.fixed_point import RAY, mul_div_up, saturating_sub
from ..core.market_adapter import MarketError
from ..core.types import ReserveConfig, StrategyKind
from ..core.vault import LendingVault, role_authorizer
from ..market.simulated import SimulatedLendingMarket
from ..state.tokens import InsufficientBalance, LedgerError, TokenLedger
from .actions import BPS, RESERVE_FLAGS, Action, ActionMsg, generate_actions
from .properties import Observation, check_all

logger = logging.getLogger(__name__)

ASSET_ADDRESS = "0x" + "aa" * 20
RECEIPT_ADDRESS = "0x" + "ab" * 20
ADMIN_ADDRESS = "0x" + "ad" * 20
FUNDER_ADDRESS = "0x" + "fd" * 20
BORROWER_ADDRESS = "0x" + "b0" * 20

# Errors a vault call may legitimately reject with; anything else propagates.
_REJECTIONS = (VaultError, LedgerError, MarketError)


def holder_address(index: int) -> str:
    return "0x" + f"{index + 1:040x}"


@dataclass(frozen=True)
class Violation:
    step: int
    action: str
    property_id: str
    detail: str


class PropertyViolation(AssertionError):
    """Raised when a run breaks at least one property; carries every violation seen."""

    def __init__(self, violations: List[Violation], seed: int) -> None:
        self.violations = list(violations)
        self.seed = seed
        first = self.violations[0]
        super().__init__(
            f"seed={seed}: {len(self.violations)} violation(s) of {self.property_ids}; "
            f"first at step {first.step} ({first.action}): {first.detail}"
        )

    @property
    def property_ids(self) -> List[str]:
        return sorted({v.property_id for v in self.violations})


@dataclass
class HarnessReport:
    seed: int
    steps: int
    strategy: str
    accepted: Counter = field(default_factory=Counter)
    rejected: Counter = field(default_factory=Counter)
    violations: List[Violation] = field(default_factory=list)
    final_total_assets: int = 0
    final_total_supply: int = 0

    @property
    def ok(self) -> bool:
        return not self.violations

    def to_dict(self) -> dict:
        return {
            "seed": self.seed,
            "steps": self.steps,
            "strategy": self.strategy,
            "ok": self.ok,
            "accepted": dict(sorted(self.accepted.items())),
            "rejected": dict(sorted(self.rejected.items())),
            "violations": [
                {"step": v.step, "action": v.action, "property": v.property_id, "detail": v.detail}
                for v in self.violations
            ],
            "final_total_assets": str(self.final_total_assets),
            "final_total_supply": str(self.final_total_supply),
        }


def default_vault_config(strategy: StrategyKind) -> VaultConfig:
    return VaultConfig(
        name="Harness Vault",
        symbol="hvUSD",
        first_deposit_amount=10_000_000,
        strategy=strategy,
    )


class InvariantHarness:
    def __init__(
        self,
        config: HarnessConfig = HarnessConfig(),
        *,
        vault_config: Optional[VaultConfig] = None,
        fail_fast: bool = False,
    ) -> None:
        self.config = config
        self.vault_config = vault_config or default_vault_config(config.strategy)
        self.fail_fast = fail_fast
        self.strategy = config.strategy

        self.ledger = TokenLedger()
        self.market = SimulatedLendingMarket(self.ledger)
        self.market.list_reserve(ASSET_ADDRESS, RECEIPT_ADDRESS, ReserveConfig(decimals=6))
        self.vault = LendingVault(self.ledger)

        self.holders = [holder_address(i) for i in range(config.holders)]
        self.funding = config.max_amount * 8
        self.ledger.mint(ASSET_ADDRESS, FUNDER_ADDRESS, self.vault_config.first_deposit_amount)
        for holder in self.holders:
            self.ledger.mint(ASSET_ADDRESS, holder, self.funding)

        self.vault.initialize(
            authorizer=role_authorizer(ADMIN_ADDRESS),
            asset=ASSET_ADDRESS,
            name=self.vault_config.name,
            symbol=self.vault_config.symbol,
            funding_account=FUNDER_ADDRESS,
            first_deposit_amount=self.vault_config.first_deposit_amount,
            market=self.market if self.strategy is StrategyKind.LENDING else None,
            strategy=self.strategy,
            deposit_cap=self.vault_config.deposit_cap,
        )

        self.model_shares: Dict[str, int] = {h: 0 for h in self.holders}
        self.model_assets: Dict[str, int] = {h: self.funding for h in self.holders}
        self.accepted: Counter = Counter()
        self.rejected: Counter = Counter()
        self.violations: List[Violation] = []
        self.borrowed = 0
        self.steps_run = 0
        self._current = ""

        self._handlers: Dict[Action, Callable[[ActionMsg], bool]] = {
            Action.DEPOSIT: self._deposit,
            Action.MINT: self._mint,
            Action.WITHDRAW: self._withdraw,
            Action.REDEEM: self._redeem,
            Action.SKIM: self._skim,
            Action.RECOGNIZE_PROFIT: self._recognize_profit,
            Action.RECOGNIZE_LOSS: self._recognize_loss,
            Action.PAUSE: self._pause,
            Action.UNPAUSE: self._unpause,
            Action.DONATE: self._donate,
            Action.ROUND_TRIP: self._round_trip,
            Action.SET_RESERVE_FLAG: self._set_reserve_flag,
            Action.SET_SUPPLY_CAP: self._set_supply_cap,
            Action.SET_TREASURY_ACCRUAL: self._set_treasury_accrual,
            Action.BORROW: self._borrow,
            Action.REPAY: self._repay,
        }

    # -- driving -----------------------------------------------------------

    def run(self, actions: Optional[Iterable[ActionMsg]] = None) -> HarnessReport:
        if actions is None:
            actions = generate_actions(
                self.config.seed,
                steps=self.config.steps,
                holders=self.config.holders,
                max_amount=self.config.max_amount,
            )
        for msg in actions:
            self.step(msg)
        report = self.report()
        logger.info(
            "harness seed=%d strategy=%s steps=%d accepted=%d rejected=%d violations=%d",
            report.seed, report.strategy, report.steps,
            sum(report.accepted.values()), sum(report.rejected.values()), len(report.violations),
        )
        return report

    def step(self, msg: ActionMsg) -> bool:
        """Apply one action and check every property; returns whether the vault accepted it."""
        self.steps_run += 1
        self._current = msg.action.value
        accepted = self._handlers[msg.action](msg)
        (self.accepted if accepted else self.rejected)[msg.action.value] += 1
        for prop_id in check_all(self.observe()):
            self._violate(prop_id, "state property failed after step")
        return accepted

    def report(self) -> HarnessReport:
        return HarnessReport(
            seed=self.config.seed,
            steps=self.steps_run,
            strategy=self.strategy.value,
            accepted=Counter(self.accepted),
            rejected=Counter(self.rejected),
            violations=list(self.violations),
            final_total_assets=self.vault.total_assets(),
            final_total_supply=self.vault.total_supply(),
        )

    def observe(self) -> Observation:
        vault = self.vault
        deposits_open, withdrawals_open, liquidity = self._market_state()
        return Observation(
            total_assets=vault.total_assets(),
            total_supply=vault.total_supply(),
            share_balances={h: vault.balance_of(h) for h in self.ledger.holders(vault.address)},
            model_shares=dict(self.model_shares),
            asset_balances={h: self.ledger.balance_of(ASSET_ADDRESS, h) for h in self.holders},
            model_assets=dict(self.model_assets),
            capacities={h: vault.capacity(h) for h in self.holders},
            locked=vault.locked,
            deposits_open=deposits_open,
            withdrawals_open=withdrawals_open,
            withdraw_liquidity=liquidity,
        )

    def _market_state(self) -> tuple:
        """Gates and liquidity read straight from the market, independent of the vault."""
        if self.strategy is not StrategyKind.LENDING:
            return True, True, self._asset_balance(self.vault.address)
        cfg = self.market.get_reserve_data(ASSET_ADDRESS).configuration
        return (
            cfg.active and not cfg.frozen and not cfg.paused,
            cfg.active and not cfg.paused,
            self.market.available_liquidity(ASSET_ADDRESS),
        )

    # -- expectations ------------------------------------------------------

    def _violate(self, prop_id: str, detail: str) -> None:
        violation = Violation(self.steps_run, self._current, prop_id, detail)
        self.violations.append(violation)
        logger.error("step %d (%s): %s violated: %s", violation.step, violation.action, prop_id, detail)
        if self.fail_fast:
            raise PropertyViolation([violation], self.config.seed)

    def _expect_rejection(self, exc: Exception, *, paused: bool, over_limit: bool, underfunded: bool) -> None:
        if paused:
            if not isinstance(exc, VaultPausedError):
                self._violate("pause_gating", f"expected Paused, got {type(exc).__name__}: {exc}")
            return
        if over_limit:
            if not isinstance(exc, CapacityExceededError):
                self._violate("capacity_consistency", f"expected CapacityExceeded, got {type(exc).__name__}: {exc}")
            return
        if underfunded and isinstance(exc, InsufficientBalance):
            return
        self._violate("capacity_consistency", f"rejected within capacity: {type(exc).__name__}: {exc}")

    def _expect_acceptance(self, *, paused: bool, over_limit: bool, underfunded: bool) -> None:
        if paused:
            self._violate("pause_gating", "accepted while paused")
        elif over_limit:
            self._violate("capacity_consistency", "accepted above the max* figure")
        elif underfunded:
            self._violate("capacity_consistency", "accepted without sufficient funds")

    def _holder(self, msg: ActionMsg) -> str:
        return self.holders[msg.holder % len(self.holders)]

    def _asset_balance(self, holder: str) -> int:
        return self.ledger.balance_of(ASSET_ADDRESS, holder)

    def _exit_amount(self, limit: int, bps: int) -> int:
        amount = limit * bps // BPS
        if bps > BPS:
            amount = max(amount, limit + 1)
        return amount

    # -- entry points ------------------------------------------------------

    def _deposit(self, msg: ActionMsg) -> bool:
        holder = self._holder(msg)
        paused = self.vault.paused
        limit = self.vault.max_deposit(holder)
        # At zero capacity every deposit doubles as the deposit(1) check.
        amount = max(msg.amount, 1) if limit == 0 else msg.amount
        expected = self.vault.preview_deposit(amount)
        over_limit = amount > limit
        underfunded = amount > self._asset_balance(holder)
        try:
            shares = self.vault.deposit(amount, holder, sender=holder)
        except _REJECTIONS as exc:
            self._expect_rejection(exc, paused=paused, over_limit=over_limit, underfunded=underfunded)
            return False
        self._expect_acceptance(paused=paused, over_limit=over_limit, underfunded=underfunded)
        if shares != expected:
            self._violate("preview_matches", f"deposit({amount}) minted {shares}, preview said {expected}")
        self.model_shares[holder] += shares
        self.model_assets[holder] -= amount
        return True

    def _mint(self, msg: ActionMsg) -> bool:
        holder = self._holder(msg)
        paused = self.vault.paused
        limit = self.vault.max_mint(holder)
        shares = max(msg.amount, 1) if limit == 0 else msg.amount
        expected = self.vault.preview_mint(shares)
        over_limit = shares > limit
        underfunded = expected > self._asset_balance(holder)
        try:
            assets = self.vault.mint(shares, holder, sender=holder)
        except _REJECTIONS as exc:
            self._expect_rejection(exc, paused=paused, over_limit=over_limit, underfunded=underfunded)
            return False
        self._expect_acceptance(paused=paused, over_limit=over_limit, underfunded=underfunded)
        if assets != expected:
            self._violate("preview_matches", f"mint({shares}) cost {assets}, preview said {expected}")
        self.model_shares[holder] += shares
        self.model_assets[holder] -= assets
        return True

    def _withdraw(self, msg: ActionMsg) -> bool:
        holder = self._holder(msg)
        paused = self.vault.paused
        limit = self.vault.max_withdraw(holder)
        amount = self._exit_amount(limit, msg.bps)
        expected = self.vault.preview_withdraw(amount)
        over_limit = amount > limit
        try:
            shares = self.vault.withdraw(amount, holder, holder, sender=holder)
        except _REJECTIONS as exc:
            self._expect_rejection(exc, paused=paused, over_limit=over_limit, underfunded=False)
            return False
        self._expect_acceptance(paused=paused, over_limit=over_limit, underfunded=False)
        if shares != expected:
            self._violate("preview_matches", f"withdraw({amount}) burned {shares}, preview said {expected}")
        self.model_shares[holder] -= shares
        self.model_assets[holder] += amount
        return True

    def _redeem(self, msg: ActionMsg) -> bool:
        holder = self._holder(msg)
        paused = self.vault.paused
        limit = self.vault.max_redeem(holder)
        shares = self._exit_amount(limit, msg.bps)
        expected = self.vault.preview_redeem(shares)
        over_limit = shares > limit
        try:
            assets = self.vault.redeem(shares, holder, holder, sender=holder)
        except _REJECTIONS as exc:
            self._expect_rejection(exc, paused=paused, over_limit=over_limit, underfunded=False)
            return False
        self._expect_acceptance(paused=paused, over_limit=over_limit, underfunded=False)
        if assets != expected:
            self._violate("preview_matches", f"redeem({shares}) paid {assets}, preview said {expected}")
        self.model_shares[holder] -= shares
        self.model_assets[holder] += assets
        return True

    def _skim(self, msg: ActionMsg) -> bool:
        idle = self._asset_balance(self.vault.address) - self.vault.strategy.idle_balance()
        supply_before = self.vault.total_supply()
        try:
            swept = self.vault.skim()
        except _REJECTIONS as exc:
            self._violate("unexpected_error", f"skim failed: {type(exc).__name__}: {exc}")
            return False
        if swept > idle:
            self._violate("unexpected_error", f"skim swept {swept} with only {idle} idle")
        if self.vault.total_supply() != supply_before:
            self._violate("unexpected_error", "skim changed the share supply")
        return swept > 0

    # -- market perturbations ---------------------------------------------

    def _check_valuation(self, before: tuple, *, increased: bool) -> None:
        assets_before, supply_before = before
        assets_after, supply_after = self.vault.total_assets(), self.vault.total_supply()
        moved = assets_after > assets_before if increased else assets_after < assets_before
        if not moved:
            direction = "increase" if increased else "decrease"
            self._violate(
                "monotonic_valuation",
                f"total assets did not strictly {direction}: {assets_before} -> {assets_after}",
            )
        if supply_after != supply_before:
            self._violate("monotonic_valuation", f"share supply moved: {supply_before} -> {supply_after}")

    def _recognize_profit(self, msg: ActionMsg) -> bool:
        amount = max(msg.amount, 1)
        before = (self.vault.total_assets(), self.vault.total_supply())
        if self.strategy is StrategyKind.LENDING:
            scaled = self.market.scaled_balance_of(ASSET_ADDRESS, self.vault.address)
            if scaled == 0:
                return False
            # Rounded up so the position grows by at least `amount`.
            self.market.accrue(ASSET_ADDRESS, mul_div_up(amount, RAY, scaled))
        else:
            self.ledger.mint(ASSET_ADDRESS, self.vault.address, amount)
        self._check_valuation(before, increased=True)
        return True

    def _recognize_loss(self, msg: ActionMsg) -> bool:
        assets_before = self.vault.total_assets()
        if assets_before == 0:
            return False
        # Keep losses partial so runs stay in a solvent regime.
        amount = min(max(msg.amount, 1), max(1, assets_before // 2))
        before = (assets_before, self.vault.total_supply())
        if self.strategy is StrategyKind.LENDING:
            scaled = self.market.scaled_balance_of(ASSET_ADDRESS, self.vault.address)
            index = self.market.get_reserve_normalized_income(ASSET_ADDRESS)
            delta = min(mul_div_up(amount, RAY, scaled), index - 1)
            if delta <= 0 or position_value(scaled, index - delta) >= assets_before:
                return False
            self.market.realize_loss(ASSET_ADDRESS, delta)
        else:
            self.ledger.burn(ASSET_ADDRESS, self.vault.address, amount)
        self._check_valuation(before, increased=False)
        return True

    # -- external market state ---------------------------------------------

    def _set_reserve_flag(self, msg: ActionMsg) -> bool:
        if self.strategy is not StrategyKind.LENDING or msg.flag not in RESERVE_FLAGS:
            return False
        self.market.set_reserve_flags(ASSET_ADDRESS, **{msg.flag: msg.enabled})
        logger.debug("reserve %s=%s", msg.flag, msg.enabled)
        return True

    def _set_supply_cap(self, msg: ActionMsg) -> bool:
        if self.strategy is not StrategyKind.LENDING:
            return False
        if msg.bps == 0:
            self.market.set_supply_cap(ASSET_ADDRESS, 0)
            return True
        unit = 10 ** self.market.get_reserve_data(ASSET_ADDRESS).configuration.decimals
        usage = self.market.supply_cap_usage(ASSET_ADDRESS)
        cap_whole = max(1, usage * msg.bps // BPS // unit)
        self.market.set_supply_cap(ASSET_ADDRESS, cap_whole)
        headroom = saturating_sub(cap_whole * unit, usage)
        for holder in self.holders:
            limit = self.vault.max_deposit(holder)
            if limit > headroom:
                self._violate("capacity_consistency", f"max_deposit {limit} above supply-cap headroom {headroom}")
                break
        return True

    def _set_treasury_accrual(self, msg: ActionMsg) -> bool:
        if self.strategy is not StrategyKind.LENDING:
            return False
        self.market.set_accrued_to_treasury(ASSET_ADDRESS, msg.amount)
        return True

    def _borrow(self, msg: ActionMsg) -> bool:
        if self.strategy is not StrategyKind.LENDING:
            return False
        amount = self.market.available_liquidity(ASSET_ADDRESS) * min(msg.bps, BPS) // BPS
        if amount == 0:
            return False
        self.market.borrow(ASSET_ADDRESS, amount, BORROWER_ADDRESS)
        self.borrowed += amount
        return True

    def _repay(self, msg: ActionMsg) -> bool:
        if self.strategy is not StrategyKind.LENDING or self.borrowed == 0:
            return False
        amount = max(1, self.borrowed * min(msg.bps, BPS) // BPS)
        self.market.repay(ASSET_ADDRESS, amount, BORROWER_ADDRESS)
        self.borrowed -= amount
        return True

    # -- administration ----------------------------------------------------

    def _toggle_pause(self, msg: ActionMsg, *, pause: bool) -> bool:
        caller = ADMIN_ADDRESS if msg.privileged else self._holder(msg)
        call = self.vault.pause if pause else self.vault.unpause
        try:
            call(caller)
        except _REJECTIONS as exc:
            if msg.privileged or not isinstance(exc, UnauthorizedError):
                self._violate("unexpected_error", f"{self._current} by {caller} failed: {type(exc).__name__}: {exc}")
            return False
        if not msg.privileged:
            self._violate("unexpected_error", f"{self._current} accepted from unauthorized {caller}")
        if self.vault.paused is not pause:
            self._violate("pause_gating", f"paused flag is {self.vault.paused} after {self._current}")
        return True

    def _pause(self, msg: ActionMsg) -> bool:
        return self._toggle_pause(msg, pause=True)

    def _unpause(self, msg: ActionMsg) -> bool:
        return self._toggle_pause(msg, pause=False)

    # -- compound actions --------------------------------------------------

    def _donate(self, msg: ActionMsg) -> bool:
        holder = self._holder(msg)
        if msg.amount == 0 or msg.amount > self._asset_balance(holder):
            return False
        supply_before = self.vault.total_supply()
        self.ledger.transfer(ASSET_ADDRESS, holder, self.vault.address, msg.amount)
        self.model_assets[holder] -= msg.amount
        if self.vault.total_supply() != supply_before:
            self._violate("unexpected_error", "donation changed the share supply")
        return True

    def _round_trip(self, msg: ActionMsg) -> bool:
        holder = self._holder(msg)
        amount = msg.amount
        if self.vault.paused or amount == 0:
            return False
        if amount > self.vault.max_deposit(holder) or amount > self._asset_balance(holder):
            return False
        try:
            shares = self.vault.deposit(amount, holder, sender=holder)
        except _REJECTIONS as exc:
            self._violate("capacity_consistency", f"round-trip deposit rejected: {type(exc).__name__}: {exc}")
            return False
        self.model_shares[holder] += shares
        self.model_assets[holder] -= amount

        if shares > self.vault.max_redeem(holder):
            return False
        try:
            returned = self.vault.redeem(shares, holder, holder, sender=holder)
        except _REJECTIONS as exc:
            self._violate("capacity_consistency", f"round-trip redeem rejected: {type(exc).__name__}: {exc}")
            return False
        self.model_shares[holder] -= shares
        self.model_assets[holder] += returned
        if returned > amount:
            self._violate("round_trip", f"deposit {amount} then redeem {shares} returned {returned}")
        return True


def run_harness(
    config: HarnessConfig,
    *,
    vault_config: Optional[VaultConfig] = None,
    raise_on_violation: bool = True,
) -> HarnessReport:
    report = InvariantHarness(config, vault_config=vault_config).run()
    if raise_on_violation and report.violations:
        raise PropertyViolation(report.violations, config.seed)
    return report
