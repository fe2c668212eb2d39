from __future__ import annotations

import pytest

from src.core.types import ReserveConfig, StrategyKind
from src.core.vault import LendingVault, role_authorizer
from src.market.simulated import SimulatedLendingMarket
from src.state.tokens import TokenLedger
from tests.vault_world import ADMIN, ALICE, ASSET, BOB, FIRST_DEPOSIT, FUNDER, HOLDER_FUNDING, RECEIPT


@pytest.fixture
def ledger() -> TokenLedger:
    ledger = TokenLedger()
    ledger.mint(ASSET, FUNDER, FIRST_DEPOSIT)
    ledger.mint(ASSET, ALICE, HOLDER_FUNDING)
    ledger.mint(ASSET, BOB, HOLDER_FUNDING)
    return ledger


@pytest.fixture
def market(ledger: TokenLedger) -> SimulatedLendingMarket:
    market = SimulatedLendingMarket(ledger)
    market.list_reserve(ASSET, RECEIPT, ReserveConfig(decimals=6))
    return market


@pytest.fixture
def vault(ledger: TokenLedger, market: SimulatedLendingMarket) -> LendingVault:
    vault = LendingVault(ledger)
    vault.initialize(
        authorizer=role_authorizer(ADMIN),
        asset=ASSET,
        name="Lending Vault USDC",
        symbol="lvUSDC",
        funding_account=FUNDER,
        first_deposit_amount=FIRST_DEPOSIT,
        market=market,
    )
    return vault


@pytest.fixture
def cash_vault(ledger: TokenLedger) -> LendingVault:
    vault = LendingVault(ledger)
    vault.initialize(
        authorizer=role_authorizer(ADMIN),
        asset=ASSET,
        name="Cash Vault USDC",
        symbol="cvUSDC",
        funding_account=FUNDER,
        first_deposit_amount=FIRST_DEPOSIT,
        strategy=StrategyKind.CASH,
    )
    return vault
