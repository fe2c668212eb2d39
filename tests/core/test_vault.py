"""Tests for src/core/vault.py: entry points, capacity, guards and rollback."""

from __future__ import annotations

from typing import Any, get_type_hints

import pytest

from src.core.errors import (
    AlreadyInitializedError,
    CapacityExceededError,
    InvalidAssetError,
    MarketDivestError,
    NotInitializedError,
    NullAddressError,
    ReentrantCallError,
    UnauthorizedError,
    VaultPausedError,
)
from src.core.fixed_point import MAX_UINT256, RAY
from src.core.market_adapter import MarketError
from src.core.types import Event, ReserveConfig, StrategyKind, VaultStatus
from src.core.vault import DEAD_ADDRESS, EventLog, LendingVault, role_authorizer
from src.market.simulated import SimulatedLendingMarket
from src.state.balances import ZERO_ADDRESS
from src.state.tokens import InsufficientAllowance, TokenLedger
from tests.vault_world import ADMIN, ALICE, ASSET, BOB, FIRST_DEPOSIT, FUNDER, HOLDER_FUNDING, RECEIPT

UNIT = 10**6
# 5% a year, one week of linear accrual.
WEEK_INDEX_DELTA = RAY * 5 // 100 * 7 // 365


def _init(vault: LendingVault, market, **overrides) -> int:
    params = dict(
        authorizer=role_authorizer(ADMIN),
        asset=ASSET,
        name="Lending Vault USDC",
        symbol="lvUSDC",
        funding_account=FUNDER,
        first_deposit_amount=FIRST_DEPOSIT,
        market=market,
    )
    params.update(overrides)
    return vault.initialize(**params)


class FlakyMarket(SimulatedLendingMarket):
    """Market whose withdrawals can be made to revert or under-deliver."""

    fail_withdrawals = False
    short_by = 0

    def withdraw(self, asset, amount, to, *, sender):
        if self.fail_withdrawals:
            raise MarketError("NOT_ENOUGH_LIQUIDITY")
        return super().withdraw(asset, amount - self.short_by, to, sender=sender)


class TestInitialize:
    def test_bootstrap_deposit(self, vault, ledger, market):
        assert vault.status is VaultStatus.ACTIVE
        assert vault.balance_of(DEAD_ADDRESS) == FIRST_DEPOSIT
        assert vault.total_supply() == FIRST_DEPOSIT
        assert vault.total_assets() == FIRST_DEPOSIT
        assert ledger.balance_of(ASSET, FUNDER) == 0
        assert market.scaled_balance_of(ASSET, vault.address) == FIRST_DEPOSIT
        assert vault.receipt_token == RECEIPT
        assert vault.decimals == 6

    def test_emits_setup_events(self, vault, market):
        [pool_set] = vault.events.records(Event.POOL_SET)
        [receipt_set] = vault.events.records(Event.RECEIPT_TOKEN_SET)
        assert pool_set.args["market"] == market.address
        assert receipt_set.args["token"] == RECEIPT
        assert len(vault.events.records(Event.DEPOSIT)) == 1

    def test_uncapped_market_saturates_max_deposit(self, vault):
        assert vault.max_deposit(ALICE) == MAX_UINT256
        assert vault.max_mint(ALICE) == MAX_UINT256

    def test_second_initialize_rejected(self, vault, market):
        with pytest.raises(AlreadyInitializedError):
            _init(vault, market)

    def test_entry_points_require_initialization(self, ledger):
        vault = LendingVault(ledger)
        with pytest.raises(NotInitializedError):
            vault.deposit(1, ALICE, sender=ALICE)
        with pytest.raises(NotInitializedError):
            vault.skim()
        assert vault.max_deposit(ALICE) == 0
        assert vault.total_assets() == 0

    @pytest.mark.parametrize("field", ["asset", "funding_account"])
    def test_zero_address_arguments(self, ledger, market, field):
        vault = LendingVault(ledger)
        with pytest.raises(NullAddressError):
            _init(vault, market, **{field: ZERO_ADDRESS})
        assert vault.status is VaultStatus.UNINITIALIZED

    def test_missing_market(self, ledger):
        vault = LendingVault(ledger)
        with pytest.raises(NullAddressError):
            _init(vault, None)
        with pytest.raises(NullAddressError):
            _init(vault, SimulatedLendingMarket(ledger, address=ZERO_ADDRESS))

    def test_unlisted_asset_is_invalid(self, ledger, market):
        vault = LendingVault(ledger)
        other = "0x" + "ee" * 20
        ledger.mint(other, FUNDER, FIRST_DEPOSIT)
        with pytest.raises(InvalidAssetError):
            _init(vault, market, asset=other)
        assert vault.status is VaultStatus.UNINITIALIZED
        assert vault.strategy is None
        assert ledger.balance_of(other, FUNDER) == FIRST_DEPOSIT

    def test_bootstrap_over_supply_cap_rolls_back(self, ledger, market):
        market.set_supply_cap(ASSET, 1)
        vault = LendingVault(ledger)
        with pytest.raises(CapacityExceededError):
            _init(vault, market)
        assert vault.status is VaultStatus.UNINITIALIZED
        assert vault.events.records() == []
        assert ledger.balance_of(ASSET, FUNDER) == FIRST_DEPOSIT
        assert market.scaled_total_supply(ASSET) == 0
        # A corrected retry goes through.
        market.set_supply_cap(ASSET, 100)
        assert _init(vault, market) == FIRST_DEPOSIT


class TestDepositMint:
    def test_deposit_matches_preview(self, vault, ledger):
        expected = vault.preview_deposit(UNIT)
        shares = vault.deposit(UNIT, ALICE, sender=ALICE)
        assert shares == expected == UNIT
        assert vault.balance_of(ALICE) == UNIT
        assert vault.total_assets() == FIRST_DEPOSIT + UNIT
        assert ledger.balance_of(ASSET, ALICE) == HOLDER_FUNDING - UNIT
        [event] = vault.events.records(Event.DEPOSIT)[1:]
        assert event.args == {"sender": ALICE, "owner": ALICE, "assets": UNIT, "shares": UNIT}

    def test_deposit_for_another_receiver(self, vault):
        vault.deposit(UNIT, BOB, sender=ALICE)
        assert vault.balance_of(BOB) == UNIT
        assert vault.balance_of(ALICE) == 0

    def test_mint_charges_preview(self, vault, market):
        market.accrue(ASSET, RAY // 3)
        expected = vault.preview_mint(UNIT)
        assert vault.mint(UNIT, ALICE, sender=ALICE) == expected
        assert vault.balance_of(ALICE) == UNIT

    def test_frozen_reserve_blocks_deposits_not_withdrawals(self, vault, market):
        vault.deposit(5 * UNIT, ALICE, sender=ALICE)
        before = vault.max_withdraw(ALICE)
        market.set_reserve_flags(ASSET, frozen=True)
        assert vault.max_deposit(ALICE) == 0
        assert vault.max_mint(ALICE) == 0
        assert vault.max_withdraw(ALICE) == before
        with pytest.raises(CapacityExceededError) as exc:
            vault.deposit(1, ALICE, sender=ALICE)
        assert exc.value.code == "CapacityExceeded"
        assert vault.withdraw(before, ALICE, ALICE, sender=ALICE) > 0

    def test_supply_cap_headroom(self, vault, market):
        market.set_supply_cap(ASSET, 15)
        assert vault.max_deposit(ALICE) == 5 * UNIT
        with pytest.raises(CapacityExceededError):
            vault.deposit(5 * UNIT + 1, ALICE, sender=ALICE)
        vault.deposit(5 * UNIT, ALICE, sender=ALICE)
        assert vault.max_deposit(ALICE) == 0

    def test_treasury_accrual_counts_against_cap(self, vault, market):
        market.set_supply_cap(ASSET, 15)
        market.set_accrued_to_treasury(ASSET, 2 * UNIT)
        assert vault.max_deposit(ALICE) == 3 * UNIT

    def test_vault_deposit_cap(self, vault):
        vault.set_deposit_cap(ADMIN, 12 * UNIT)
        assert vault.max_deposit(ALICE) == 2 * UNIT
        with pytest.raises(CapacityExceededError):
            vault.deposit(2 * UNIT + 1, ALICE, sender=ALICE)
        [event] = vault.events.records(Event.DEPOSIT_CAP_SET)
        assert event.args["cap"] == 12 * UNIT
        with pytest.raises(UnauthorizedError):
            vault.set_deposit_cap(ALICE, None)

    def test_invalid_arguments(self, vault):
        with pytest.raises(ValueError):
            vault.deposit(-1, ALICE, sender=ALICE)
        with pytest.raises(NullAddressError):
            vault.deposit(1, ZERO_ADDRESS, sender=ALICE)
        assert not vault.locked


class TestWithdrawRedeem:
    def test_week_of_accrual_pays_yield(self, vault, market):
        shares = vault.deposit(10 * UNIT, ALICE, sender=ALICE)
        assets_before = vault.total_assets()
        market.accrue(ASSET, WEEK_INDEX_DELTA)
        assert vault.total_assets() > assets_before
        assert vault.redeem(shares, ALICE, ALICE, sender=ALICE) > 10 * UNIT
        assert vault.balance_of(ALICE) == 0

    def test_withdraw_matches_preview(self, vault, ledger):
        vault.deposit(3 * UNIT, ALICE, sender=ALICE)
        expected = vault.preview_withdraw(UNIT)
        assert vault.withdraw(UNIT, BOB, ALICE, sender=ALICE) == expected
        assert ledger.balance_of(ASSET, BOB) == HOLDER_FUNDING + UNIT
        [event] = vault.events.records(Event.WITHDRAW)
        assert event.args["receiver"] == BOB
        assert event.args["owner"] == ALICE

    def test_redeem_over_balance(self, vault):
        shares = vault.deposit(UNIT, ALICE, sender=ALICE)
        with pytest.raises(CapacityExceededError):
            vault.redeem(shares + 1, ALICE, ALICE, sender=ALICE)

    def test_borrowed_liquidity_caps_exits(self, vault, market):
        vault.deposit(UNIT, ALICE, sender=ALICE)
        market.borrow(ASSET, FIRST_DEPOSIT + UNIT // 2, BOB)
        assert vault.max_withdraw(ALICE) == UNIT // 2
        assert vault.max_redeem(ALICE) <= UNIT // 2
        with pytest.raises(CapacityExceededError):
            vault.withdraw(UNIT, ALICE, ALICE, sender=ALICE)

    def test_third_party_needs_allowance(self, vault):
        shares = vault.deposit(UNIT, ALICE, sender=ALICE)
        with pytest.raises(InsufficientAllowance):
            vault.redeem(shares, BOB, ALICE, sender=BOB)
        assert vault.balance_of(ALICE) == shares
        vault.approve(BOB, shares, owner=ALICE)
        vault.redeem(shares, BOB, ALICE, sender=BOB)
        assert vault.allowance(ALICE, BOB) == 0

    def test_unlimited_allowance(self, vault):
        vault.deposit(UNIT, ALICE, sender=ALICE)
        vault.approve(BOB, MAX_UINT256, owner=ALICE)
        vault.withdraw(UNIT // 2, BOB, ALICE, sender=BOB)
        assert vault.allowance(ALICE, BOB) == MAX_UINT256

    def test_share_transfer(self, vault):
        vault.deposit(UNIT, ALICE, sender=ALICE)
        vault.transfer(BOB, UNIT // 4, sender=ALICE)
        assert vault.balance_of(BOB) == UNIT // 4
        assert vault.total_supply() == FIRST_DEPOSIT + UNIT


class TestDivestFailure:
    @pytest.fixture
    def flaky(self, ledger):
        market = FlakyMarket(ledger)
        market.list_reserve(ASSET, RECEIPT, ReserveConfig())
        vault = LendingVault(ledger)
        _init(vault, market)
        vault.deposit(UNIT, ALICE, sender=ALICE)
        return vault, market

    def test_market_revert_burns_nothing(self, flaky, ledger):
        vault, market = flaky
        market.fail_withdrawals = True
        supply = vault.total_supply()
        with pytest.raises(MarketDivestError) as exc:
            vault.withdraw(UNIT // 2, ALICE, ALICE, sender=ALICE)
        assert exc.value.code == "MarketDivestFailure"
        assert vault.total_supply() == supply
        assert vault.balance_of(ALICE) == UNIT
        assert ledger.balance_of(ASSET, ALICE) == HOLDER_FUNDING - UNIT
        assert vault.events.records(Event.WITHDRAW) == []

    def test_short_payout_is_a_failure(self, flaky):
        vault, market = flaky
        market.short_by = 1
        assets = vault.total_assets()
        with pytest.raises(MarketDivestError):
            vault.redeem(UNIT, ALICE, ALICE, sender=ALICE)
        assert vault.total_assets() == assets
        assert vault.balance_of(ALICE) == UNIT


class TestReentrancy:
    def test_reentry_during_supply(self, vault, market, ledger):
        market.reentry_hook = lambda op, asset: vault.deposit(1, ALICE, sender=ALICE)
        supply = vault.total_supply()
        scaled = market.scaled_total_supply(ASSET)
        with pytest.raises(ReentrantCallError):
            vault.deposit(UNIT, ALICE, sender=ALICE)
        assert vault.total_supply() == supply
        assert market.scaled_total_supply(ASSET) == scaled
        assert ledger.balance_of(ASSET, ALICE) == HOLDER_FUNDING
        assert not vault.locked
        market.reentry_hook = None
        assert vault.deposit(UNIT, ALICE, sender=ALICE) == UNIT

    def test_reentry_during_withdraw(self, vault, market):
        shares = vault.deposit(UNIT, ALICE, sender=ALICE)
        market.reentry_hook = lambda op, asset: vault.redeem(1, ALICE, ALICE, sender=ALICE)
        with pytest.raises(ReentrantCallError) as exc:
            vault.redeem(shares, ALICE, ALICE, sender=ALICE)
        assert exc.value.code == "ReentrantCall"
        assert vault.balance_of(ALICE) == shares


class TestPause:
    def test_gates_value_moving_entry_points(self, vault):
        shares = vault.deposit(UNIT, ALICE, sender=ALICE)
        vault.pause(ADMIN)
        assert vault.paused
        for call in (
            lambda: vault.deposit(1, ALICE, sender=ALICE),
            lambda: vault.mint(1, ALICE, sender=ALICE),
            lambda: vault.withdraw(1, ALICE, ALICE, sender=ALICE),
            lambda: vault.redeem(1, ALICE, ALICE, sender=ALICE),
        ):
            with pytest.raises(VaultPausedError) as exc:
                call()
            assert exc.value.code == "Paused"
        assert vault.skim() == 0
        assert vault.total_assets() == FIRST_DEPOSIT + UNIT
        assert vault.preview_redeem(shares) > 0
        vault.unpause(ADMIN)
        assert vault.redeem(shares, ALICE, ALICE, sender=ALICE) > 0
        assert [r.event for r in vault.events.records() if r.event in (Event.PAUSED, Event.UNPAUSED)] == [
            Event.PAUSED,
            Event.UNPAUSED,
        ]

    def test_requires_authorization(self, vault):
        with pytest.raises(UnauthorizedError):
            vault.pause(ALICE)
        assert not vault.paused
        vault.pause(ADMIN)
        with pytest.raises(UnauthorizedError):
            vault.unpause(BOB)
        assert vault.paused


class TestSkim:
    def test_sweeps_donations_into_market(self, vault, ledger, market):
        ledger.transfer(ASSET, ALICE, vault.address, 1_000)
        assets = vault.total_assets()
        assert vault.skim() == 1_000
        assert vault.total_assets() == assets + 1_000
        assert ledger.balance_of(ASSET, vault.address) == 0
        assert len(vault.events.records(Event.SKIM)) == 1

    def test_allowed_while_paused(self, vault, ledger):
        ledger.transfer(ASSET, ALICE, vault.address, 1_000)
        vault.pause(ADMIN)
        assert vault.skim() == 1_000

    def test_respects_market_state(self, vault, ledger, market):
        ledger.transfer(ASSET, ALICE, vault.address, 1_000)
        market.set_reserve_flags(ASSET, frozen=True)
        assert vault.skim() == 0
        market.set_reserve_flags(ASSET, frozen=False)
        market.set_supply_cap(ASSET, 10)  # no headroom left after the bootstrap deposit
        assert vault.skim() == 0
        assert vault.events.records(Event.SKIM) == []


class TestCashStrategy:
    def test_assets_stay_in_custody(self, cash_vault, ledger):
        shares = cash_vault.deposit(UNIT, ALICE, sender=ALICE)
        assert ledger.balance_of(ASSET, cash_vault.address) == FIRST_DEPOSIT + UNIT
        assert cash_vault.total_assets() == FIRST_DEPOSIT + UNIT
        assert cash_vault.market is None
        assert cash_vault.events.records(Event.POOL_SET) == []
        assert cash_vault.redeem(shares, ALICE, ALICE, sender=ALICE) == UNIT

    def test_donation_accrues_to_holders(self, cash_vault, ledger):
        shares = cash_vault.deposit(FIRST_DEPOSIT, ALICE, sender=ALICE)
        ledger.transfer(ASSET, BOB, cash_vault.address, 2 * UNIT)
        assert cash_vault.skim() == 0
        assert cash_vault.redeem(shares, ALICE, ALICE, sender=ALICE) > FIRST_DEPOSIT

    def test_strategy_kind(self, cash_vault):
        assert cash_vault.strategy.kind is StrategyKind.CASH
        assert cash_vault.max_deposit(ALICE) == MAX_UINT256


class TestEventLog:
    def test_emit_is_typed(self):
        hints = get_type_hints(EventLog.emit)
        assert hints["event"] is Event
        assert hints["args"] is Any

    def test_restore_drops_later_records(self):
        log = EventLog()
        log.emit(Event.SKIM, amount=1)
        snap = log.snapshot()
        log.emit(Event.SKIM, amount=2)
        log.restore(snap)
        assert [r.args["amount"] for r in log.records(Event.SKIM)] == [1]
