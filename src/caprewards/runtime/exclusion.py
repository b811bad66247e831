# src/caprewards/runtime/exclusion.py
from __future__ import annotations

"""Exclusion registry and eligible-supply bookkeeping.

Maintains, as O(1) running counters updated on every balance change:

    eligible_supply == total_supply - total_excluded_supply

Balance increases follow the late-entry rule: an increase on/after the active
epoch's checkpoint_start waits for the next epoch. Decreases consume late
balance first (it was not accruing), then accruing balance, whose forfeited
future units go through the BreakageRouter.

Callers settle global accrual and every touched account to `now` first.
"""

import logging

from caprewards.ledger.types import Account, RewardsState
from caprewards.runtime.accrual import UnitAccrualLedger
from caprewards.runtime.breakage import BreakageRouter
from caprewards.runtime.errors import InvalidConfig
from caprewards.runtime.rewards_logging import log_event
from caprewards.runtime.scheduler import EpochScheduler

_log = logging.getLogger("caprewards.exclusion")


class ExclusionRegistry:
    def __init__(
        self,
        state: RewardsState,
        scheduler: EpochScheduler,
        accrual: UnitAccrualLedger,
        breakage: BreakageRouter,
    ) -> None:
        self._state = state
        self._scheduler = scheduler
        self._accrual = accrual
        self._breakage = breakage

    def is_excluded(self, account_id: str) -> bool:
        acct = self._accrual.get_account(account_id)
        return bool(acct is not None and acct.excluded)

    # ---- balance movements ----

    def credit(self, acct: Account, amount: int, now: int) -> None:
        amount = int(amount)
        if amount <= 0:
            return
        g = self._state.global_state
        if acct.excluded:
            g.total_excluded_supply += amount
            acct.balance += amount
            return

        g.eligible_supply += amount
        was_empty = acct.balance == 0

        late_epoch = self._scheduler.late_entry_epoch(now)
        if late_epoch is not None:
            acct.late_balance += amount
            acct.late_epoch = late_epoch
            g.late_supply[late_epoch] = int(g.late_supply.get(late_epoch, 0)) + amount
        else:
            g.accrual_rate += amount

        if was_empty:
            acct.entered_epoch = self._scheduler.entry_epoch(now)
        acct.balance += amount

    def debit(self, acct: Account, amount: int, now: int, *, to_holder: bool) -> None:
        amount = int(amount)
        if amount <= 0:
            return
        g = self._state.global_state
        if acct.excluded:
            g.total_excluded_supply -= amount
            acct.balance -= amount
            return

        g.eligible_supply -= amount
        from_late = min(amount, int(acct.late_balance))
        if from_late:
            self._drop_late(acct, from_late)
        accruing = amount - from_late
        if accruing:
            g.accrual_rate -= accruing
            self._breakage.route_decrease(account_id=acct.account_id, amount=accruing, now=now, to_holder=to_holder)

        acct.balance -= amount
        if acct.balance == 0:
            acct.entered_epoch = 0

    def _drop_late(self, acct: Account, amount: int) -> None:
        g = self._state.global_state
        left = int(g.late_supply.get(acct.late_epoch, 0)) - amount
        if left > 0:
            g.late_supply[acct.late_epoch] = left
        else:
            g.late_supply.pop(acct.late_epoch, None)
        acct.late_balance -= amount
        if acct.late_balance == 0:
            acct.late_epoch = 0

    # ---- admin toggle ----

    def set_excluded(self, account_id: str, excluded: bool, now: int) -> bool:
        """Toggle exclusion. Returns False when already in the requested state."""
        if not excluded and account_id and account_id == self._state.breakage_sink:
            raise InvalidConfig("breakage_sink_must_stay_excluded", {"account": account_id})

        acct = self._accrual.settle(account_id, now)
        if bool(acct.excluded) == bool(excluded):
            return False

        g = self._state.global_state
        balance = int(acct.balance)
        if excluded:
            # Leaves eligibility like a debit that is not a transfer to a holder.
            self.debit(acct, balance, now, to_holder=False)
            acct.excluded = True
            acct.balance = balance
            g.total_excluded_supply += balance
        else:
            acct.excluded = False
            acct.balance = 0
            g.total_excluded_supply -= balance
            # Re-inclusion is a fresh increase for late-entry purposes.
            self.credit(acct, balance, now)

        log_event(
            _log,
            "account_excluded",
            account=account_id,
            excluded=bool(excluded),
            balance=balance,
            entered_epoch=acct.entered_epoch,
        )
        return True
