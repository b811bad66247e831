# src/caprewards/runtime/engine.py
from __future__ import annotations

"""RewardsEngine: the public entrypoints.

Every entrypoint:
  - reads time once from the injected Clock
  - runs inside an atomic scope (undo journal + ledger snapshot); any exception
    restores the pre-call state
  - settles global accrual and touched accounts before mutating anything
  - commits internal accounting before issuing external calls (ledger mints)

Mints issued by the engine re-enter through on_balance_change; those nested
calls join the outer atomic scope.

Usage:
    ledger = InMemoryTokenLedger()
    engine = RewardsEngine(ledger, policy=StaticPolicy(), clock=ManualClock(t0), admin="ops")
    engine.configure_epoch("ops", epoch_id=1, start=..., end=..., checkpoint_start=..., checkpoint_end=...)
    ledger.mint("alice", 100 * TOKEN)
    ...
    engine.distribute("ops", coupon_amount)
    engine.claim("alice")
"""

import copy
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from caprewards.ledger.constants import ROLE_ADMIN, ROLE_DISTRIBUTOR
from caprewards.ledger.token_ledger import BalanceListener, TokenLedger
from caprewards.ledger.types import Epoch, EpochPhase, EpochReport, RewardsState
from caprewards.runtime import metrics
from caprewards.runtime.access import AccessControl
from caprewards.runtime.accrual import UnitAccrualLedger
from caprewards.runtime.breakage import BreakageRouter
from caprewards.runtime.claims import ClaimProcessor
from caprewards.runtime.clock import Clock, SystemClock
from caprewards.runtime.distribution import DistributionEngine
from caprewards.runtime.errors import InsufficientBalance, InvalidConfig
from caprewards.runtime.exclusion import ExclusionRegistry
from caprewards.runtime.journal import StateJournal
from caprewards.runtime.policy import PolicyManager
from caprewards.runtime.rewards_logging import log_event
from caprewards.runtime.scheduler import EpochScheduler

Json = Dict[str, Any]

_log = logging.getLogger("caprewards.engine")


def _as_account(v: Any, *, field: str = "account") -> str:
    s = str(v).strip() if isinstance(v, str) else ""
    if not s:
        raise InvalidConfig("empty_account", {"field": field})
    return s


def _as_amount(v: Any, *, field: str) -> int:
    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
        raise InvalidConfig("invalid_amount", {"field": field, "value": repr(v)})
    return int(v)


class RewardsEngine(BalanceListener):
    def __init__(
        self,
        ledger: TokenLedger,
        *,
        policy: Optional[PolicyManager] = None,
        clock: Optional[Clock] = None,
        admin: Optional[str] = None,
        state: Optional[RewardsState] = None,
    ) -> None:
        if state is None:
            # A fresh engine mirrors balances from the first hook call on.
            if int(ledger.total_supply()) != 0:
                raise InvalidConfig("ledger_not_empty", {"total_supply": int(ledger.total_supply())})
            state = RewardsState()
            state.roles[ROLE_ADMIN] = [_as_account(admin, field="admin")]
        elif admin:
            state.roles.setdefault(ROLE_ADMIN, [])
            if admin not in state.roles[ROLE_ADMIN]:
                state.roles[ROLE_ADMIN].append(admin)

        self._state = state
        self._ledger = ledger
        self._policy = policy
        self._clock = clock or SystemClock()
        self._journal: Optional[StateJournal] = None

        self._access = AccessControl(state.roles)
        self._scheduler = EpochScheduler(state)
        self._accrual = UnitAccrualLedger(state, self._scheduler)
        self._breakage = BreakageRouter(state, self._scheduler)
        self._exclusion = ExclusionRegistry(state, self._scheduler, self._accrual, self._breakage)
        self._distribution = DistributionEngine(state, self._scheduler, self._accrual, policy)
        self._claims = ClaimProcessor(state, self._scheduler, self._accrual, policy, ledger.total_supply)

        ledger.attach(self)

    # ---- plumbing ----

    @property
    def state(self) -> RewardsState:
        return self._state

    @property
    def ledger(self) -> TokenLedger:
        return self._ledger

    @property
    def policy(self) -> Optional[PolicyManager]:
        return self._policy

    @property
    def scheduler(self) -> EpochScheduler:
        return self._scheduler

    def _now(self) -> int:
        return max(int(self._clock.now()), int(self._state.global_state.last_update_time))

    def now(self) -> int:
        return self._now()

    def transaction(self):
        """Group several entrypoints so they commit or roll back together."""
        return self._atomic()

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        if self._journal is not None:
            yield
            return
        journal = StateJournal(self._state, self._ledger.snapshot())
        self._journal = journal
        self._accrual.journal = journal
        try:
            yield
        except BaseException:
            journal.rollback()
            self._ledger.restore(journal.ledger_snapshot)
            metrics.inc_counter("calls_reverted")
            raise
        finally:
            self._journal = None
            self._accrual.journal = None

    # ---- ledger hook ----

    def on_balance_change(self, sender: Optional[str], receiver: Optional[str], amount: int) -> None:
        amount = int(amount)
        if amount <= 0:
            return
        with self._atomic():
            now = self._now()
            g = self._accrual.settle_global(now)

            if sender is not None and sender == receiver:
                self._accrual.settle_account(sender, now)
                return

            src = self._accrual.settle_account(sender, now) if sender is not None else None
            dst = self._accrual.settle_account(receiver, now) if receiver is not None else None

            if src is not None:
                if src.balance < amount:
                    raise InsufficientBalance(src.account_id, src.balance, amount)
                to_holder = dst is not None and not dst.excluded
                self._exclusion.debit(src, amount, now, to_holder=to_holder)
            else:
                g.total_supply += amount

            if dst is not None:
                self._exclusion.credit(dst, amount, now)
            else:
                g.total_supply -= amount

    # ---- admin ----

    def grant_role(self, caller: str, role: str, account: str) -> bool:
        self._access.require(caller, ROLE_ADMIN)
        with self._atomic():
            changed = self._access.grant(role, account)
        log_event(_log, "role_changed", role=role, account=account, granted=True, changed=changed)
        return changed

    def revoke_role(self, caller: str, role: str, account: str) -> bool:
        self._access.require(caller, ROLE_ADMIN)
        with self._atomic():
            changed = self._access.revoke(role, account)
        log_event(_log, "role_changed", role=role, account=account, granted=False, changed=changed)
        return changed

    def configure_epoch(
        self,
        caller: str,
        *,
        epoch_id: int,
        start: int,
        end: int,
        checkpoint_start: int,
        checkpoint_end: int,
    ) -> Epoch:
        self._access.require(caller, ROLE_ADMIN)
        with self._atomic():
            now = self._now()
            self._accrual.settle_global(now)
            return self._scheduler.configure_epoch(
                epoch_id=epoch_id,
                start=start,
                end=end,
                checkpoint_start=checkpoint_start,
                checkpoint_end=checkpoint_end,
                now=now,
            )

    def set_account_excluded(self, caller: str, account: str, excluded: bool) -> bool:
        self._access.require(caller, ROLE_ADMIN)
        account = _as_account(account)
        with self._atomic():
            return self._exclusion.set_excluded(account, bool(excluded), self._now())

    def set_breakage_sink(self, caller: str, account: str) -> None:
        self._access.require(caller, ROLE_ADMIN)
        account = _as_account(account)
        if account == self._state.treasury:
            raise InvalidConfig("breakage_sink_is_treasury", {"account": account})
        with self._atomic():
            self._exclusion.set_excluded(account, True, self._now())
            previous = self._state.breakage_sink
            self._state.breakage_sink = account
        self._config_changed("breakage_sink", account, previous=previous)

    def set_treasury(self, caller: str, account: str) -> None:
        self._access.require(caller, ROLE_ADMIN)
        account = _as_account(account)
        if account == self._state.breakage_sink:
            raise InvalidConfig("breakage_sink_is_treasury", {"account": account})
        previous = self._state.treasury
        with self._atomic():
            self._state.treasury = account
        self._config_changed("treasury", account, previous=previous)

    def set_enforce_cr_on_claim(self, caller: str, enabled: bool) -> None:
        self._access.require(caller, ROLE_ADMIN)
        self._state.guards.enforce_cr_on_claim = bool(enabled)
        self._config_changed("enforce_cr_on_claim", bool(enabled))

    def set_max_claim_tokens_per_tx(self, caller: str, amount: int) -> None:
        self._access.require(caller, ROLE_ADMIN)
        self._state.guards.max_claim_tokens_per_tx = _as_amount(amount, field="max_claim_tokens_per_tx")
        self._config_changed("max_claim_tokens_per_tx", int(amount))

    def set_max_tokens_to_mint_per_epoch(self, caller: str, amount: int) -> None:
        self._access.require(caller, ROLE_ADMIN)
        self._state.guards.max_tokens_to_mint_per_epoch = _as_amount(amount, field="max_tokens_to_mint_per_epoch")
        self._config_changed("max_tokens_to_mint_per_epoch", int(amount))

    def set_block_distribute_on_depeg(self, caller: str, enabled: bool) -> None:
        self._access.require(caller, ROLE_ADMIN)
        self._state.guards.block_distribute_on_depeg = bool(enabled)
        self._config_changed("block_distribute_on_depeg", bool(enabled))

    def _config_changed(self, key: str, value: Any, **extra: Any) -> None:
        log_event(_log, "config_changed", key=key, value=value, **extra)

    # ---- distribution / claims ----

    def distribute(self, caller: str, coupon_amount: int) -> Tuple[int, int]:
        """Distribute `coupon_amount` for the earliest ended epoch.

        Returns (tokens_allocated, dust_carried).
        """
        self._access.require(caller, ROLE_DISTRIBUTOR)
        with self._atomic():
            plan = self._distribution.distribute(coupon_amount, self._now())
            report = plan.report
            if report.skim_tokens > 0:
                self._ledger.mint(plan.treasury, report.skim_tokens)
            if report.breakage_tokens > 0:
                self._ledger.mint(plan.breakage_sink, report.breakage_tokens)
        return plan.result

    def claim(self, account: str) -> int:
        """Mint everything pending for `account`. Anyone may trigger a claim."""
        account = _as_account(account)
        with self._atomic():
            amount = self._claims.claim(account, self._now())
            if amount > 0:
                self._ledger.mint(account, amount)
        return amount

    # ---- views ----

    def pending_rewards(self, account: str) -> int:
        return self._claims.pending_rewards(account, self._now())

    def current_phase(self) -> Optional[EpochPhase]:
        return self._scheduler.current_phase(self._now())

    def get_epoch_report(self, epoch_id: int) -> Optional[EpochReport]:
        return self._state.reports.get(int(epoch_id))

    def get_epochs(self) -> List[Epoch]:
        return list(self._state.epochs)

    def get_global_state(self) -> Json:
        """Global record projected to now (read-only; stored state is untouched)."""
        view = RewardsState(
            global_state=copy.deepcopy(self._state.global_state),
            epochs=copy.deepcopy(self._state.epochs),
            reports=self._state.reports,
        )
        now = self._now()
        UnitAccrualLedger(view, EpochScheduler(view)).settle_global(now)
        out = view.global_state.to_dict()
        cur = EpochScheduler(view).current_epoch(now)
        out["current_epoch_id"] = cur.id if cur is not None else 0
        return out

    def get_account_full_state(self, account: str) -> Json:
        now = self._now()
        acct = self._accrual.get_account(account)
        if acct is None:
            rec: Json = {"account_id": account, "known": False}
            pending = 0
        else:
            view = self._accrual.accrue(copy.deepcopy(acct), now)
            rec = view.to_dict()
            rec["known"] = True
            pending = int(view.accrued_rewards)
        rec["pending_rewards"] = pending
        rec["ledger_balance"] = int(self._ledger.balance_of(account))
        rec["is_breakage_sink"] = bool(account and account == self._state.breakage_sink)
        rec["as_of"] = now
        return rec
