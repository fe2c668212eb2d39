"""Typed harness actions and their seeded generator."""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum, unique
from typing import Dict, Iterator

BPS = 10_000


@unique
class Action(Enum):
    DEPOSIT = "deposit"
    MINT = "mint"
    WITHDRAW = "withdraw"
    REDEEM = "redeem"
    SKIM = "skim"
    RECOGNIZE_PROFIT = "recognize_profit"
    RECOGNIZE_LOSS = "recognize_loss"
    PAUSE = "pause"
    UNPAUSE = "unpause"
    DONATE = "donate"
    ROUND_TRIP = "round_trip"
    SET_RESERVE_FLAG = "set_reserve_flag"
    SET_SUPPLY_CAP = "set_supply_cap"
    SET_TREASURY_ACCRUAL = "set_treasury_accrual"
    BORROW = "borrow"
    REPAY = "repay"


RESERVE_FLAGS = ("active", "frozen", "paused")


@dataclass(frozen=True)
class ActionMsg:
    """One harness step. Unused fields stay at their defaults.

    `bps` is a basis-point fraction: of the holder's current max for
    withdraw / redeem (may exceed 100%), of current cap usage for
    set_supply_cap (0 = uncapped), and of available liquidity or outstanding
    debt for borrow / repay.
    """

    action: Action
    holder: int = 0
    amount: int = 0         # deposit / mint / donate / round_trip / profit / loss / treasury accrual
    bps: int = 0
    privileged: bool = True  # pause / unpause: issued by the admin or by a holder
    flag: str = ""          # set_reserve_flag: one of RESERVE_FLAGS
    enabled: bool = False   # set_reserve_flag: new value of the flag


ACTION_WEIGHTS: Dict[Action, int] = {
    Action.DEPOSIT: 20,
    Action.MINT: 10,
    Action.WITHDRAW: 14,
    Action.REDEEM: 14,
    Action.SKIM: 4,
    Action.RECOGNIZE_PROFIT: 8,
    Action.RECOGNIZE_LOSS: 4,
    Action.PAUSE: 2,
    Action.UNPAUSE: 4,
    Action.DONATE: 4,
    Action.ROUND_TRIP: 8,
    Action.SET_RESERVE_FLAG: 4,
    Action.SET_SUPPLY_CAP: 3,
    Action.SET_TREASURY_ACCRUAL: 2,
    Action.BORROW: 3,
    Action.REPAY: 4,
}


def _draw_amount(rng: random.Random, max_amount: int) -> int:
    roll = rng.random()
    if roll < 0.05:
        return 0
    if roll < 0.25:
        return rng.randint(1, min(10, max_amount))
    return rng.randint(1, max_amount)


def _draw_bps(rng: random.Random) -> int:
    roll = rng.random()
    if roll < 0.15:
        return BPS
    if roll < 0.25:
        return rng.randint(BPS + 1, BPS + BPS // 10)
    return rng.randint(0, BPS)


def draw_action(rng: random.Random, *, holders: int, max_amount: int) -> ActionMsg:
    kinds = list(ACTION_WEIGHTS)
    action = rng.choices(kinds, weights=[ACTION_WEIGHTS[k] for k in kinds], k=1)[0]
    holder = rng.randrange(holders)

    if action in (Action.WITHDRAW, Action.REDEEM):
        return ActionMsg(action, holder=holder, bps=_draw_bps(rng))
    if action in (Action.PAUSE, Action.UNPAUSE):
        return ActionMsg(action, holder=holder, privileged=rng.random() < 0.8)
    if action is Action.SKIM:
        return ActionMsg(action, holder=holder)
    if action is Action.SET_RESERVE_FLAG:
        flag = rng.choice(RESERVE_FLAGS)
        # Mostly drift back towards an open reserve.
        healthy = rng.random() < 0.7
        return ActionMsg(action, holder=holder, flag=flag, enabled=healthy if flag == "active" else not healthy)
    if action is Action.SET_SUPPLY_CAP:
        bps = 0 if rng.random() < 0.25 else rng.randint(1, 2 * BPS)
        return ActionMsg(action, holder=holder, bps=bps)
    if action in (Action.BORROW, Action.REPAY):
        return ActionMsg(action, holder=holder, bps=rng.randint(1, BPS))
    if action in (Action.RECOGNIZE_PROFIT, Action.RECOGNIZE_LOSS):
        return ActionMsg(action, holder=holder, amount=rng.randint(1, max_amount))
    return ActionMsg(action, holder=holder, amount=_draw_amount(rng, max_amount))


def generate_actions(seed: int, *, steps: int, holders: int, max_amount: int) -> Iterator[ActionMsg]:
    """Replayable action stream: the same arguments always yield the same sequence."""
    if holders < 1:
        raise ValueError("holders must be >= 1")
    if max_amount < 1:
        raise ValueError("max_amount must be >= 1")
    rng = random.Random(seed)
    for _ in range(steps):
        yield draw_action(rng, holders=holders, max_amount=max_amount)
