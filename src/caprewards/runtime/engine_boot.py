# src/caprewards/runtime/engine_boot.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from caprewards.ledger.constants import ROLE_DISTRIBUTOR
from caprewards.ledger.token_ledger import InMemoryTokenLedger
from caprewards.ledger.types import RewardsState
from caprewards.runtime.clock import Clock, SystemClock
from caprewards.runtime.config import EngineConfig, load_engine_config
from caprewards.runtime.engine import RewardsEngine
from caprewards.runtime.policy import StaticPolicy
from caprewards.runtime.rewards_logging import log_event
from caprewards.runtime.sqlite_db import SqliteDB, SqliteRewardsStore

Json = Dict[str, Any]

_log = logging.getLogger("caprewards.boot")


@dataclass
class RewardsRuntime:
    """Engine plus the bundled ledger/policy and the store that persists them."""

    cfg: EngineConfig
    engine: RewardsEngine
    ledger: InMemoryTokenLedger
    policy: StaticPolicy
    store: Optional[SqliteRewardsStore] = None

    def snapshot(self) -> Json:
        return {
            "engine": self.engine.state.to_dict(),
            "ledger": self.ledger.to_dict(),
            "policy": self.policy.to_dict(),
        }

    def persist(self) -> None:
        if self.store is not None:
            self.store.write(self.snapshot())


def _apply_wiring(engine: RewardsEngine, cfg: EngineConfig) -> None:
    admin = cfg.admin
    if cfg.treasury:
        engine.set_treasury(admin, cfg.treasury)
    if cfg.breakage_sink:
        engine.set_breakage_sink(admin, cfg.breakage_sink)
    if cfg.distributor:
        engine.grant_role(admin, ROLE_DISTRIBUTOR, cfg.distributor)
    engine.set_enforce_cr_on_claim(admin, cfg.enforce_cr_on_claim)
    engine.set_max_claim_tokens_per_tx(admin, cfg.max_claim_tokens_per_tx)
    engine.set_max_tokens_to_mint_per_epoch(admin, cfg.max_tokens_to_mint_per_epoch)
    engine.set_block_distribute_on_depeg(admin, cfg.block_distribute_on_depeg)


def build_runtime(
    cfg: Optional[EngineConfig] = None,
    *,
    clock: Optional[Clock] = None,
    persist: bool = True,
) -> RewardsRuntime:
    """
    Build the runtime from an explicit config or, if omitted, from
    CAPREWARDS_CONFIG_PATH / defaults.

    With persist=True the SQLite snapshot at cfg.db_path is restored when it
    exists. Config wiring (treasury, sink, distributor, guards) is applied only
    to a fresh engine; afterwards the persisted settings are authoritative.
    """
    c = cfg or load_engine_config()
    clk = clock or SystemClock()
    store = SqliteRewardsStore(db=SqliteDB(path=c.db_path)) if persist else None

    if store is not None and store.exists():
        snap = store.read()
        ledger = InMemoryTokenLedger.from_dict(snap.get("ledger") or {})
        policy = StaticPolicy.from_dict(snap.get("policy") or {})
        state = RewardsState.from_dict(snap.get("engine") or {})
        engine = RewardsEngine(ledger, policy=policy, clock=clk, admin=c.admin, state=state)
        log_event(
            _log,
            "engine_restored",
            db_path=c.db_path,
            epochs=len(state.epochs),
            accounts=len(state.accounts),
            total_supply=ledger.total_supply(),
        )
        return RewardsRuntime(cfg=c, engine=engine, ledger=ledger, policy=policy, store=store)

    ledger = InMemoryTokenLedger()
    policy = StaticPolicy()
    engine = RewardsEngine(ledger, policy=policy, clock=clk, admin=c.admin)
    _apply_wiring(engine, c)
    rt = RewardsRuntime(cfg=c, engine=engine, ledger=ledger, policy=policy, store=store)
    rt.persist()
    log_event(_log, "engine_created", db_path=c.db_path if persist else None, mode=c.mode)
    return rt
