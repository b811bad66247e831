"""caprewards.ledger.types

Record types for the rewards engine.

This module defines:
  - EpochPhase: lifecycle phase of an epoch relative to "now"
  - Epoch: configured reward window + per-epoch unit totals frozen at close
  - Account: per-holder accrual record (balance mirrors the token ledger)
  - GlobalState: single long-lived accumulator record
  - EpochReport: append-only distribution record
  - RewardsState: the whole engine state, JSON round-trippable for snapshots
"""

from __future__ import annotations

import copy
import enum
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

Json = Dict[str, Any]


def _coerce_int(v: Any, *, field: str) -> int:
    try:
        # bool is an int subclass; disallow it explicitly
        if isinstance(v, bool):
            raise ValueError("bool is not a valid int")
        return int(v)
    except Exception as e:
        raise ValueError(f"RewardsState schema error: field '{field}' must be int-coercible (got {type(v).__name__})") from e


def _int_keyed(v: Any, *, field: str) -> Dict[int, int]:
    if v is None:
        return {}
    if not isinstance(v, dict):
        raise ValueError(f"RewardsState schema error: field '{field}' must be dict (got {type(v).__name__})")
    return {_coerce_int(k, field=field): _coerce_int(x, field=field) for k, x in v.items()}


class EpochPhase(str, enum.Enum):
    OPEN = "open"
    CHECKPOINT = "checkpoint"
    POST_CHECKPOINT = "post_checkpoint"
    CLOSED = "closed"
    DISTRIBUTED = "distributed"


@dataclass
class Epoch:
    id: int
    start_time: int
    end_time: int
    checkpoint_start: int
    checkpoint_end: int
    distributed: bool = False

    # Set when the epoch is configured inside its own window: time before the
    # configuring call never accrues, for any account or globally.
    accrual_start: int = 0

    # Frozen when global settlement passes end_time.
    closed: bool = False
    eligible_units: int = 0
    future_breakage_units: int = 0
    treasury_breakage_units: int = 0

    def contains(self, t: int) -> bool:
        return self.start_time <= t < self.end_time

    @property
    def accrues_from(self) -> int:
        return max(int(self.start_time), int(self.accrual_start))

    def phase_at(self, now: int) -> EpochPhase:
        if self.distributed:
            return EpochPhase.DISTRIBUTED
        if now >= self.end_time:
            return EpochPhase.CLOSED
        if now >= self.checkpoint_end:
            return EpochPhase.POST_CHECKPOINT
        if now >= self.checkpoint_start:
            return EpochPhase.CHECKPOINT
        return EpochPhase.OPEN

    def is_late(self, now: int) -> bool:
        """True when a balance increase at `now` misses this epoch."""
        return self.contains(now) and now >= self.checkpoint_start

    @property
    def denominator_units(self) -> int:
        return int(self.eligible_units) + int(self.future_breakage_units) + int(self.treasury_breakage_units)

    def to_dict(self) -> Json:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Json) -> "Epoch":
        return cls(
            id=_coerce_int(d.get("id"), field="epoch.id"),
            start_time=_coerce_int(d.get("start_time"), field="epoch.start_time"),
            end_time=_coerce_int(d.get("end_time"), field="epoch.end_time"),
            checkpoint_start=_coerce_int(d.get("checkpoint_start"), field="epoch.checkpoint_start"),
            checkpoint_end=_coerce_int(d.get("checkpoint_end"), field="epoch.checkpoint_end"),
            distributed=bool(d.get("distributed", False)),
            accrual_start=_coerce_int(d.get("accrual_start", 0), field="epoch.accrual_start"),
            closed=bool(d.get("closed", False)),
            eligible_units=_coerce_int(d.get("eligible_units", 0), field="epoch.eligible_units"),
            future_breakage_units=_coerce_int(d.get("future_breakage_units", 0), field="epoch.future_breakage_units"),
            treasury_breakage_units=_coerce_int(
                d.get("treasury_breakage_units", 0), field="epoch.treasury_breakage_units"
            ),
        )


@dataclass
class Account:
    """Per-holder accrual record.

    Pending rewards are computed from each distributed epoch's delta_index
    applied to the units earned in that epoch (`epoch_units`).
    `reward_debt_index` is an informational checkpoint: the global reward index
    at the account's last claim. Nothing reads it back for accounting.
    """

    account_id: str
    balance: int = 0
    last_accrual_time: int = 0
    reward_debt_index: int = 0
    excluded: bool = False
    entered_epoch: int = 0

    # Portion of `balance` that arrived on/after a checkpoint; accrues from `late_epoch`.
    late_balance: int = 0
    late_epoch: int = 0

    # Units earned per epoch that have not been converted to tokens yet.
    epoch_units: Dict[int, int] = field(default_factory=dict)
    accrued_rewards: int = 0
    total_claimed: int = 0

    def accruing_balance(self, epoch_id: int) -> int:
        if self.excluded:
            return 0
        if self.late_balance and epoch_id < self.late_epoch:
            return int(self.balance) - int(self.late_balance)
        return int(self.balance)

    def to_dict(self) -> Json:
        d = asdict(self)
        d["epoch_units"] = {str(k): int(v) for k, v in self.epoch_units.items()}
        return d

    @classmethod
    def from_dict(cls, d: Json) -> "Account":
        return cls(
            account_id=str(d.get("account_id") or ""),
            balance=_coerce_int(d.get("balance", 0), field="account.balance"),
            last_accrual_time=_coerce_int(d.get("last_accrual_time", 0), field="account.last_accrual_time"),
            reward_debt_index=_coerce_int(d.get("reward_debt_index", 0), field="account.reward_debt_index"),
            excluded=bool(d.get("excluded", False)),
            entered_epoch=_coerce_int(d.get("entered_epoch", 0), field="account.entered_epoch"),
            late_balance=_coerce_int(d.get("late_balance", 0), field="account.late_balance"),
            late_epoch=_coerce_int(d.get("late_epoch", 0), field="account.late_epoch"),
            epoch_units=_int_keyed(d.get("epoch_units"), field="account.epoch_units"),
            accrued_rewards=_coerce_int(d.get("accrued_rewards", 0), field="account.accrued_rewards"),
            total_claimed=_coerce_int(d.get("total_claimed", 0), field="account.total_claimed"),
        )


@dataclass
class GlobalState:
    # Running unit counters for the epoch currently accruing (accrual_epoch_id).
    eligible_units: int = 0
    treasury_breakage_units: int = 0
    future_breakage_units: int = 0

    eligible_supply: int = 0
    total_supply: int = 0
    total_excluded_supply: int = 0
    total_breakage: int = 0

    reward_index: int = 0
    dust_carry: int = 0
    total_rewards_declared: int = 0
    total_rewards_claimed: int = 0

    last_update_time: int = 0

    # Sum of balances currently accruing units, and late balances keyed by the
    # epoch at whose start they begin accruing.
    accrual_rate: int = 0
    late_supply: Dict[int, int] = field(default_factory=dict)
    accrual_epoch_id: int = 0

    def to_dict(self) -> Json:
        d = asdict(self)
        d["late_supply"] = {str(k): int(v) for k, v in self.late_supply.items()}
        return d

    @classmethod
    def from_dict(cls, d: Json) -> "GlobalState":
        g = cls()
        for name in (
            "eligible_units",
            "treasury_breakage_units",
            "future_breakage_units",
            "eligible_supply",
            "total_supply",
            "total_excluded_supply",
            "total_breakage",
            "reward_index",
            "dust_carry",
            "total_rewards_declared",
            "total_rewards_claimed",
            "last_update_time",
            "accrual_rate",
            "accrual_epoch_id",
        ):
            setattr(g, name, _coerce_int(d.get(name, 0), field=f"global.{name}"))
        g.late_supply = _int_keyed(d.get("late_supply"), field="global.late_supply")
        return g


@dataclass(frozen=True)
class EpochReport:
    epoch_id: int
    distribution_time: int
    denominator_units: int
    delta_index: int
    tokens_allocated: int
    dust_carry_after: int

    coupon_amount: int = 0
    price: int = 0
    gross_tokens: int = 0
    skim_tokens: int = 0
    breakage_tokens: int = 0

    def to_dict(self) -> Json:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Json) -> "EpochReport":
        kwargs = {}
        for name in cls.__dataclass_fields__:
            kwargs[name] = _coerce_int(d.get(name, 0), field=f"report.{name}")
        return cls(**kwargs)


@dataclass
class GuardSettings:
    enforce_cr_on_claim: bool = False
    max_claim_tokens_per_tx: int = 0
    max_tokens_to_mint_per_epoch: int = 0
    block_distribute_on_depeg: bool = False

    def to_dict(self) -> Json:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Json) -> "GuardSettings":
        return cls(
            enforce_cr_on_claim=bool(d.get("enforce_cr_on_claim", False)),
            max_claim_tokens_per_tx=_coerce_int(d.get("max_claim_tokens_per_tx", 0), field="guards.max_claim"),
            max_tokens_to_mint_per_epoch=_coerce_int(
                d.get("max_tokens_to_mint_per_epoch", 0), field="guards.max_mint"
            ),
            block_distribute_on_depeg=bool(d.get("block_distribute_on_depeg", False)),
        )


@dataclass
class RewardsState:
    """Whole engine state. Mutated only by the runtime components."""

    global_state: GlobalState = field(default_factory=GlobalState)
    accounts: Dict[str, Account] = field(default_factory=dict)
    epochs: List[Epoch] = field(default_factory=list)
    reports: Dict[int, EpochReport] = field(default_factory=dict)
    guards: GuardSettings = field(default_factory=GuardSettings)
    roles: Dict[str, List[str]] = field(default_factory=dict)
    treasury: str = ""
    breakage_sink: str = ""

    def clone(self) -> "RewardsState":
        return copy.deepcopy(self)

    def epoch_by_id(self, epoch_id: int) -> Optional[Epoch]:
        # ids are sequential from 1
        i = int(epoch_id) - 1
        if 0 <= i < len(self.epochs):
            return self.epochs[i]
        return None

    def to_dict(self) -> Json:
        return {
            "global": self.global_state.to_dict(),
            "accounts": {k: a.to_dict() for k, a in sorted(self.accounts.items())},
            "epochs": [e.to_dict() for e in self.epochs],
            "reports": {str(k): r.to_dict() for k, r in sorted(self.reports.items())},
            "guards": self.guards.to_dict(),
            "roles": {k: sorted(v) for k, v in sorted(self.roles.items())},
            "treasury": self.treasury,
            "breakage_sink": self.breakage_sink,
        }

    @classmethod
    def from_dict(cls, d: Json) -> "RewardsState":
        if not isinstance(d, dict):
            raise ValueError(f"RewardsState schema error: root must be dict (got {type(d).__name__})")
        accounts_raw = d.get("accounts") or {}
        reports_raw = d.get("reports") or {}
        roles_raw = d.get("roles") or {}
        return cls(
            global_state=GlobalState.from_dict(d.get("global") or {}),
            accounts={str(k): Account.from_dict(v) for k, v in accounts_raw.items()},
            epochs=[Epoch.from_dict(e) for e in (d.get("epochs") or [])],
            reports={int(k): EpochReport.from_dict(v) for k, v in reports_raw.items()},
            guards=GuardSettings.from_dict(d.get("guards") or {}),
            roles={str(k): [str(x) for x in v] for k, v in roles_raw.items()},
            treasury=str(d.get("treasury") or ""),
            breakage_sink=str(d.get("breakage_sink") or ""),
        )
