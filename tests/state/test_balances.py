import pytest

from src.state.balances import BalanceTable

A = "0x" + "01" * 20
B = "0x" + "02" * 20
TOKEN = "0x" + "aa" * 20


def test_missing_balance_reads_zero() -> None:
    table = BalanceTable()
    assert table.get(A, TOKEN) == 0


def test_zero_balances_are_dropped() -> None:
    table = BalanceTable()
    table.set(A, TOKEN, 5)
    table.subtract(A, TOKEN, 5)
    assert table.holders(TOKEN) == []


def test_subtract_below_zero_raises() -> None:
    table = BalanceTable()
    table.add(A, TOKEN, 3)
    with pytest.raises(ValueError):
        table.subtract(A, TOKEN, 4)
    assert table.get(A, TOKEN) == 3


def test_negative_delta_rejected_by_subtract() -> None:
    table = BalanceTable()
    with pytest.raises(ValueError):
        table.subtract(A, TOKEN, -1)


def test_snapshot_restore_discards_later_writes() -> None:
    table = BalanceTable()
    table.set(A, TOKEN, 10)
    snap = table.snapshot()
    table.add(B, TOKEN, 7)
    table.subtract(A, TOKEN, 10)
    table.restore(snap)
    assert table.holders(TOKEN) == [A]
    assert table.get(A, TOKEN) == 10
    assert table.get(B, TOKEN) == 0


def test_holders_are_per_token_and_sorted() -> None:
    table = BalanceTable()
    table.add(B, TOKEN, 1)
    table.add(A, TOKEN, 2)
    table.add(A, "0x" + "bb" * 20, 3)
    assert table.holders(TOKEN) == [A, B]
    assert table.holders("0x" + "bb" * 20) == [A]
