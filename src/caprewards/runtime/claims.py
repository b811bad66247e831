# src/caprewards/runtime/claims.py
from __future__ import annotations

"""Claim processor.

pending = accrued_rewards after settlement, where settlement converts the units
of every distributed epoch at that epoch's delta_index. Guards run in order:

  1. enforce_cr_on_claim: stale attestation, then CR headroom
         headroom = max(0, total_supply * (CR - 1))
  2. per-transaction cap

claim() raises NoRewardsDeclared only when nothing was ever distributed; an
account with nothing pending gets 0 back.
"""

import copy
import logging
from typing import Callable, Optional

from caprewards.ledger.constants import WAD
from caprewards.ledger.types import RewardsState
from caprewards.runtime import metrics
from caprewards.runtime.accrual import UnitAccrualLedger
from caprewards.runtime.errors import (
    ClaimExceedsHeadroom,
    InvalidConfig,
    MaxClaimPerTxExceeded,
    NoRewardsDeclared,
    StaleAttestationForClaim,
)
from caprewards.runtime.policy import PolicyManager
from caprewards.runtime.rewards_logging import log_event
from caprewards.runtime.scheduler import EpochScheduler

_log = logging.getLogger("caprewards.claims")


def cr_headroom(total_supply: int, collateral_ratio: int) -> int:
    """Supply that can be added before CR falls to parity."""
    cr = int(collateral_ratio)
    if cr <= WAD:
        return 0
    return int(total_supply) * (cr - WAD) // WAD


class ClaimProcessor:
    def __init__(
        self,
        state: RewardsState,
        scheduler: EpochScheduler,
        accrual: UnitAccrualLedger,
        policy: Optional[PolicyManager],
        total_supply: Callable[[], int],
    ) -> None:
        self._state = state
        self._scheduler = scheduler
        self._accrual = accrual
        self._policy = policy
        self._total_supply = total_supply

    def pending_rewards(self, account_id: str, now: int) -> int:
        acct = self._accrual.get_account(account_id)
        if acct is None:
            return 0
        view = self._accrual.accrue(copy.deepcopy(acct), now)
        return int(view.accrued_rewards)

    def _check_guards(self, pending: int, now: int) -> None:
        guards = self._state.guards
        if guards.enforce_cr_on_claim:
            if self._policy is None:
                raise InvalidConfig("policy_not_wired", None)
            if self._policy.is_attestation_stale(now):
                raise StaleAttestationForClaim({"now": int(now)})
            cr = self._policy.get_collateral_ratio()
            if cr is None:
                raise InvalidConfig("collateral_ratio_not_wired", None)
            headroom = cr_headroom(self._total_supply(), cr)
            if pending > headroom:
                raise ClaimExceedsHeadroom(pending, headroom)

        cap = int(guards.max_claim_tokens_per_tx)
        if cap > 0 and pending > cap:
            raise MaxClaimPerTxExceeded(pending, cap)

    def claim(self, account_id: str, now: int) -> int:
        """Finalize a claim in internal state; returns the amount the caller must mint."""
        now = int(now)
        g = self._accrual.settle_global(now)
        if not self._scheduler.any_distributed():
            raise NoRewardsDeclared()

        if self._accrual.get_account(account_id) is None:
            return 0
        acct = self._accrual.settle_account(account_id, now)

        pending = int(acct.accrued_rewards)
        acct.reward_debt_index = int(g.reward_index)
        if pending <= 0:
            return 0

        self._check_guards(pending, now)

        acct.accrued_rewards = 0
        acct.total_claimed += pending
        g.total_rewards_claimed += pending

        metrics.inc_counter("claims")
        metrics.inc_counter("tokens_claimed", pending)
        log_event(_log, "claim", account=account_id, amount=pending, reward_index=g.reward_index)
        return pending
