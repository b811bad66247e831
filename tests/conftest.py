from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Tuple

import pytest

# Ensure local "src/" takes precedence over any globally-installed "caprewards" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

from caprewards.ledger.constants import SECONDS_PER_DAY  # noqa: E402
from caprewards.ledger.token_ledger import InMemoryTokenLedger  # noqa: E402
from caprewards.ledger.types import Epoch  # noqa: E402
from caprewards.runtime import metrics  # noqa: E402
from caprewards.runtime.clock import ManualClock  # noqa: E402
from caprewards.runtime.engine import RewardsEngine  # noqa: E402
from caprewards.runtime.policy import StaticPolicy  # noqa: E402

DAY = SECONDS_PER_DAY


@dataclass
class RewardsWorld:
    """Engine wired to a manual clock, the in-memory ledger and a static policy.

    Epoch geometry used by the helpers: 30 days long, checkpoint window
    [start + 20d, start + 25d).
    """

    clock: ManualClock
    ledger: InMemoryTokenLedger
    policy: StaticPolicy
    engine: RewardsEngine
    t0: int
    admin: str = "ops"
    distributor: str = "dist"
    treasury: str = "TREASURY"
    sink: str = "BREAKAGE_SINK"
    epochs: List[Epoch] = field(default_factory=list)

    length: int = 30 * DAY
    cp_start: int = 20 * DAY
    cp_end: int = 25 * DAY

    def configure(self, epoch_id: int, start: int) -> Epoch:
        ep = self.engine.configure_epoch(
            self.admin,
            epoch_id=epoch_id,
            start=start,
            end=start + self.length,
            checkpoint_start=start + self.cp_start,
            checkpoint_end=start + self.cp_end,
        )
        self.epochs.append(ep)
        return ep

    def configure_series(self, n: int, first_start: int, *, gap: int = 0) -> List[Epoch]:
        out = []
        start = first_start
        for i in range(n):
            out.append(self.configure(len(self.engine.get_epochs()) + 1, start))
            start += self.length + gap
        return out

    def at(self, t: int) -> None:
        self.clock.set(t)

    def distribute(self, coupon: int) -> Tuple[int, int]:
        return self.engine.distribute(self.distributor, coupon)

    def pending(self, account: str) -> int:
        return self.engine.pending_rewards(account)


@pytest.fixture(autouse=True)
def _reset_metrics() -> None:
    metrics.reset()


@pytest.fixture
def make_world() -> Callable[..., RewardsWorld]:
    def _make(*, t0: int = 1_700_000_000, **policy_kwargs: Any) -> RewardsWorld:
        clock = ManualClock(t0)
        ledger = InMemoryTokenLedger()
        policy = StaticPolicy(**policy_kwargs)
        engine = RewardsEngine(ledger, policy=policy, clock=clock, admin="ops")
        w = RewardsWorld(clock=clock, ledger=ledger, policy=policy, engine=engine, t0=t0)
        engine.set_treasury(w.admin, w.treasury)
        engine.set_breakage_sink(w.admin, w.sink)
        engine.grant_role(w.admin, "distributor", w.distributor)
        return w

    return _make


@pytest.fixture
def world(make_world) -> RewardsWorld:
    return make_world()
