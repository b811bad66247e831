# src/caprewards/runtime/accrual.py
from __future__ import annotations

"""Unit accrual ledger.

Units are balance integrated over time (balance * seconds), counted only inside
configured epoch windows:

    units(account, epoch) += accruing_balance * (min(now, end) - max(last, start))

Globally, `accrual_rate` is the sum of all accruing balances, so integrating it
over the same clamped segments yields exactly the sum of per-account units.
Both sides change rate only at settlement points, which every mutating call
performs before applying its effect:

  1. settle_global(now)
  2. settle_account(account, now) for each touched account
  3. mutate balances / rates

Late balances (arrived on/after a checkpoint) join the rate at the start of the
epoch they wait for, on both sides. When global settlement passes an epoch's
end, the running counters are frozen into the epoch record for distribution.
"""

from typing import Dict, Optional

from caprewards.ledger.constants import WAD
from caprewards.ledger.types import Account, Epoch, GlobalState, RewardsState
from caprewards.runtime.journal import StateJournal
from caprewards.runtime.scheduler import EpochScheduler


class UnitAccrualLedger:
    def __init__(self, state: RewardsState, scheduler: EpochScheduler) -> None:
        self._state = state
        self._scheduler = scheduler
        self.journal: Optional[StateJournal] = None

    @property
    def global_state(self) -> GlobalState:
        return self._state.global_state

    # ---- account records ----

    def get_account(self, account_id: str) -> Optional[Account]:
        return self._state.accounts.get(account_id)

    def account(self, account_id: str) -> Account:
        """Account record for a write; created implicitly on first touch."""
        if self.journal is not None:
            self.journal.touch(account_id)
        acct = self._state.accounts.get(account_id)
        if acct is None:
            acct = Account(account_id=account_id)
            self._state.accounts[account_id] = acct
        return acct

    # ---- global ----

    def settle_global(self, now: int) -> GlobalState:
        g = self._state.global_state
        t0 = int(g.last_update_time)
        now = max(int(now), t0)

        for e in self._scheduler.pending_from(t0, now):
            if e.id > g.accrual_epoch_id:
                self._enter_epoch(g, e)
            s = max(t0, e.accrues_from)
            f = min(now, e.end_time)
            if f > s and g.accrual_rate:
                g.eligible_units += int(g.accrual_rate) * (f - s)
            if now >= e.end_time and not e.closed:
                self._close_epoch(g, e)

        g.last_update_time = now
        return g

    @staticmethod
    def _enter_epoch(g: GlobalState, e: Epoch) -> None:
        for eid in sorted(k for k in g.late_supply if k <= e.id):
            g.accrual_rate += int(g.late_supply.pop(eid))
        g.accrual_epoch_id = e.id

    @staticmethod
    def _close_epoch(g: GlobalState, e: Epoch) -> None:
        e.eligible_units += int(g.eligible_units)
        e.future_breakage_units += int(g.future_breakage_units)
        e.treasury_breakage_units += int(g.treasury_breakage_units)
        e.closed = True
        g.eligible_units = 0
        g.future_breakage_units = 0
        g.treasury_breakage_units = 0

    # ---- per account ----

    def accrue(self, acct: Account, now: int) -> Account:
        """Advance `acct` to `now` without touching global state.

        Pure with respect to everything except `acct`, so read-only views can
        run it on a copy.
        """
        now = int(now)
        t0 = int(acct.last_accrual_time)
        if now > t0:
            for e, s, f in self._scheduler.overlapping(t0, now):
                rate = acct.accruing_balance(e.id)
                if rate > 0:
                    acct.epoch_units[e.id] = int(acct.epoch_units.get(e.id, 0)) + rate * (f - s)
            acct.last_accrual_time = now

        if acct.late_balance and self._scheduler.has_started(acct.late_epoch, now):
            acct.late_balance = 0
            acct.late_epoch = 0

        self._convert_distributed(acct)
        return acct

    def _convert_distributed(self, acct: Account) -> None:
        reports = self._state.reports
        for eid in sorted(acct.epoch_units):
            rep = reports.get(eid)
            if rep is None:
                continue
            units = int(acct.epoch_units.pop(eid))
            acct.accrued_rewards += units * int(rep.delta_index) // WAD

    def settle_account(self, account_id: str, now: int) -> Account:
        return self.accrue(self.account(account_id), now)

    def settle(self, account_id: str, now: int) -> Account:
        self.settle_global(now)
        return self.settle_account(account_id, now)

    def unconverted_units(self, account_id: str) -> Dict[int, int]:
        acct = self.get_account(account_id)
        return dict(acct.epoch_units) if acct is not None else {}
