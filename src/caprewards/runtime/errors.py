# src/caprewards/runtime/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class RewardsError(Exception):
    """Canonical error type for every failed engine call.

    A raised RewardsError always means the call had no effect: the engine
    restores its pre-call snapshot before the exception propagates.
    """

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class ConfigError(RewardsError):
    pass


class GuardError(RewardsError):
    pass


class StateError(RewardsError):
    pass


class AccessError(RewardsError):
    pass


# ---- config ----


class InvalidConfig(ConfigError):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("invalid_config", reason, details)


class InvalidEpoch(ConfigError):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("invalid_epoch", reason, details)


# ---- guards ----


class ClaimExceedsHeadroom(GuardError):
    def __init__(self, pending: int, headroom: int) -> None:
        super().__init__("claim_exceeds_headroom", "pending_above_cr_headroom", {"pending": pending, "headroom": headroom})
        self.pending = int(pending)
        self.headroom = int(headroom)


class StaleAttestationForClaim(GuardError):
    def __init__(self, details: Any | None = None) -> None:
        super().__init__("stale_attestation_for_claim", "collateral_attestation_stale", details)


class MaxClaimPerTxExceeded(GuardError):
    def __init__(self, pending: int, cap: int) -> None:
        super().__init__("max_claim_per_tx_exceeded", "pending_above_per_tx_cap", {"pending": pending, "cap": cap})
        self.pending = int(pending)
        self.cap = int(cap)


class DistributionBlockedDuringDepeg(GuardError):
    def __init__(self, price: int, par: int) -> None:
        super().__init__("distribution_blocked_during_depeg", "price_below_par", {"price": price, "par": par})
        self.price = int(price)
        self.par = int(par)


class MaxTokensPerEpochExceeded(GuardError):
    def __init__(self, amount: int, cap: int) -> None:
        super().__init__("max_tokens_per_epoch_exceeded", "epoch_mint_above_cap", {"amount": amount, "cap": cap})
        self.amount = int(amount)
        self.cap = int(cap)


# ---- state ----


class AlreadyDistributed(StateError):
    def __init__(self, epoch_id: int) -> None:
        super().__init__("already_distributed", "epoch_already_distributed", {"epoch_id": epoch_id})
        self.epoch_id = int(epoch_id)


class EpochNotEnded(StateError):
    def __init__(self, details: Any | None = None) -> None:
        super().__init__("epoch_not_ended", "no_ended_epoch_to_distribute", details)


class NoRewardsDeclared(StateError):
    def __init__(self) -> None:
        super().__init__("no_rewards_declared", "no_epoch_distributed_yet", None)


class InsufficientBalance(StateError):
    def __init__(self, account: str, balance: int, amount: int) -> None:
        super().__init__(
            "insufficient_balance",
            "balance_below_amount",
            {"account": account, "balance": balance, "amount": amount},
        )


class InvariantViolation(StateError):
    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__("invariant_violation", reason, details)


# ---- access ----


class MissingRole(AccessError):
    def __init__(self, caller: str, role: str) -> None:
        super().__init__("forbidden", "missing_role", {"caller": caller, "role": role})
        self.caller = str(caller)
        self.role = str(role)
