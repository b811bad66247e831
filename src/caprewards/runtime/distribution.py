# src/caprewards/runtime/distribution.py
from __future__ import annotations

"""Distribution engine.

Once per epoch, at or after its end:

    gross       = coupon * WAD // price
    skim        = gross * skim_bps // BPS               -> treasury
    net         = gross - skim + dust_carry
    denominator = eligible_units + future_breakage + treasury_breakage
    delta_index = net * WAD // denominator              (floor)
    allocated   = delta_index * denominator // WAD
    dust_carry  = net - allocated                       (carried forward)

With a zero denominator the whole net amount is carried as dust. The breakage
share (breakage_units * delta_index // WAD) is minted to the breakage sink at
distribution time; holders collect their share through claims.

Rounding is floor everywhere, so the sum of all per-account payouts can never
exceed `allocated`; the remainder is never lost, it rides along as dust.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from caprewards.ledger.constants import BPS, PAR_PRICE, WAD
from caprewards.ledger.types import EpochReport, RewardsState
from caprewards.runtime import metrics
from caprewards.runtime.accrual import UnitAccrualLedger
from caprewards.runtime.errors import (
    DistributionBlockedDuringDepeg,
    InvalidConfig,
    MaxTokensPerEpochExceeded,
)
from caprewards.runtime.policy import PolicyManager
from caprewards.runtime.rewards_logging import log_event
from caprewards.runtime.scheduler import EpochScheduler

_log = logging.getLogger("caprewards.distribution")


@dataclass(frozen=True)
class DistributionPlan:
    """Token movements a committed distribution still owes to the outside world."""

    report: EpochReport
    treasury: str
    breakage_sink: str

    @property
    def result(self) -> Tuple[int, int]:
        return self.report.tokens_allocated, self.report.dust_carry_after


class DistributionEngine:
    def __init__(
        self,
        state: RewardsState,
        scheduler: EpochScheduler,
        accrual: UnitAccrualLedger,
        policy: Optional[PolicyManager],
    ) -> None:
        self._state = state
        self._scheduler = scheduler
        self._accrual = accrual
        self._policy = policy

    def _require_policy(self) -> PolicyManager:
        if self._policy is None:
            raise InvalidConfig("policy_not_wired", None)
        return self._policy

    def distribute(self, coupon_amount: int, now: int) -> DistributionPlan:
        """Commit one epoch's distribution to internal state.

        Returns the plan whose mints the caller must issue afterwards; no
        external call happens here.
        """
        coupon = int(coupon_amount)
        if coupon < 0:
            raise InvalidConfig("negative_coupon", {"coupon_amount": coupon})
        now = int(now)

        target = self._scheduler.epoch_to_distribute(now)
        g = self._accrual.settle_global(now)

        policy = self._require_policy()
        policy.refresh_band()
        price = int(policy.get_cap_price())
        if price <= 0:
            raise InvalidConfig("invalid_cap_price", {"price": price})
        skim_bps = max(0, min(int(policy.get_distribution_skim_bps()), BPS))

        guards = self._state.guards
        if guards.block_distribute_on_depeg and price < PAR_PRICE:
            raise DistributionBlockedDuringDepeg(price, PAR_PRICE)

        gross = coupon * WAD // price
        skim = gross * skim_bps // BPS
        net = gross - skim + int(g.dust_carry)

        cap = int(guards.max_tokens_to_mint_per_epoch)
        if cap > 0 and skim + net > cap:
            raise MaxTokensPerEpochExceeded(skim + net, cap)

        if skim > 0 and not self._state.treasury:
            raise InvalidConfig("treasury_not_set", {"skim": skim})

        denominator = target.denominator_units
        breakage_units = int(target.future_breakage_units) + int(target.treasury_breakage_units)
        if denominator == 0:
            delta_index = 0
            allocated = 0
        else:
            delta_index = net * WAD // denominator
            allocated = delta_index * denominator // WAD
        dust = net - allocated
        breakage_tokens = breakage_units * delta_index // WAD

        if breakage_tokens > 0 and not self._state.breakage_sink:
            raise InvalidConfig("breakage_sink_not_set", {"breakage_tokens": breakage_tokens})

        report = EpochReport(
            epoch_id=target.id,
            distribution_time=now,
            denominator_units=denominator,
            delta_index=delta_index,
            tokens_allocated=allocated,
            dust_carry_after=dust,
            coupon_amount=coupon,
            price=price,
            gross_tokens=gross,
            skim_tokens=skim,
            breakage_tokens=breakage_tokens,
        )

        g.reward_index += delta_index
        g.dust_carry = dust
        g.total_rewards_declared += allocated
        # The sink's share is paid out immediately, like a claim.
        g.total_rewards_claimed += breakage_tokens
        target.distributed = True
        target.future_breakage_units = 0
        target.treasury_breakage_units = 0
        self._state.reports[target.id] = report

        metrics.inc_counter("distributions")
        metrics.inc_counter("tokens_allocated", allocated)
        metrics.set_gauge("reward_index", g.reward_index)
        metrics.set_gauge("dust_carry", g.dust_carry)
        log_event(
            _log,
            "distribution",
            epoch_id=target.id,
            coupon_amount=coupon,
            price=price,
            skim_bps=skim_bps,
            gross_tokens=gross,
            skim_tokens=skim,
            denominator_units=denominator,
            delta_index=delta_index,
            tokens_allocated=allocated,
            breakage_tokens=breakage_tokens,
            dust_carry_after=dust,
        )
        return DistributionPlan(
            report=report,
            treasury=self._state.treasury,
            breakage_sink=self._state.breakage_sink,
        )
