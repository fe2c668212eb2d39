import pytest

from src.core.errors import AlreadyInitializedError, NotInitializedError, ReentrantCallError, VaultPausedError
from src.core.guards import Lifecycle, ReentrancyLock, atomic
from src.core.types import VaultStatus
from src.state.tokens import TokenLedger

TOKEN = "0x" + "aa" * 20
HOLDER = "0x" + "01" * 20


class TestReentrancyLock:
    def test_nested_acquire_fails(self):
        lock = ReentrancyLock()
        with lock.acquire("deposit"):
            with pytest.raises(ReentrantCallError):
                with lock.acquire("redeem"):
                    pass
        assert not lock.locked

    def test_released_on_failure(self):
        lock = ReentrancyLock()
        with pytest.raises(RuntimeError):
            with lock.acquire("deposit") as token:
                raise RuntimeError("boom")
        assert token.released
        assert not lock.locked


class TestAtomic:
    def test_restores_on_exception(self):
        ledger = TokenLedger()
        ledger.mint(TOKEN, HOLDER, 5)
        with pytest.raises(ValueError):
            with atomic([ledger], label="test"):
                ledger.mint(TOKEN, HOLDER, 10)
                raise ValueError("abort")
        assert ledger.balance_of(TOKEN, HOLDER) == 5

    def test_keeps_changes_on_success(self):
        ledger = TokenLedger()
        with atomic([ledger]):
            ledger.mint(TOKEN, HOLDER, 10)
        assert ledger.total_supply(TOKEN) == 10


class TestLifecycle:
    def test_transitions(self):
        life = Lifecycle()
        with pytest.raises(NotInitializedError):
            life.require_active()
        life.initialize()
        assert life.status is VaultStatus.ACTIVE
        life.set_paused(True)
        with pytest.raises(VaultPausedError):
            life.require_active()
        life.require_initialized()
        life.set_paused(False)
        life.require_active()

    def test_initialize_once(self):
        life = Lifecycle()
        life.initialize()
        with pytest.raises(AlreadyInitializedError):
            life.initialize()
