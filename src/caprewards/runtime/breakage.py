# src/caprewards/runtime/breakage.py
from __future__ import annotations

"""Breakage router.

When accruing balance leaves a holder, the units it would have earned until the
epoch's end are forfeited. Before the checkpoint nothing is routed: the seller's
smaller balance earns proportionally less and a buyer is still eligible for the
rest of the epoch. On/after the checkpoint the buyer is late-entered, so nobody
eligible holds those tokens for the remainder; the projected units are kept in
the denominator as breakage and later minted to the breakage sink:

    breakage_units = amount * (epoch.end - now)

  - future breakage: tokens moved to another eligible holder
  - treasury breakage: tokens left eligibility otherwise (burn, transfer to an
    excluded account, exclusion of the holder)
"""

import logging

from caprewards.ledger.types import RewardsState
from caprewards.runtime import metrics
from caprewards.runtime.rewards_logging import log_event
from caprewards.runtime.scheduler import EpochScheduler

_log = logging.getLogger("caprewards.breakage")

KIND_FUTURE = "future"
KIND_TREASURY = "treasury"


class BreakageRouter:
    def __init__(self, state: RewardsState, scheduler: EpochScheduler) -> None:
        self._state = state
        self._scheduler = scheduler

    def route_decrease(self, *, account_id: str, amount: int, now: int, to_holder: bool) -> int:
        """Record breakage for `amount` of accruing balance leaving at `now`.

        Global accrual must already be settled to `now`. Returns the units routed.
        """
        amount, now = int(amount), int(now)
        if amount <= 0:
            return 0
        e = self._scheduler.active_epoch(now)
        if e is None or now < e.checkpoint_start:
            return 0

        units = amount * (e.end_time - now)
        g = self._state.global_state
        kind = KIND_FUTURE if to_holder else KIND_TREASURY
        if to_holder:
            g.future_breakage_units += units
        else:
            g.treasury_breakage_units += units
        g.total_breakage += units

        metrics.inc_counter(f"breakage_{kind}_events")
        log_event(
            _log,
            "breakage_recorded",
            account=account_id,
            epoch_id=e.id,
            kind=kind,
            amount=amount,
            units=units,
        )
        return units
