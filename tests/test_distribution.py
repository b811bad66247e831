# tests/test_distribution.py
from __future__ import annotations

import pytest

from caprewards.ledger.constants import SECONDS_PER_DAY as DAY
from caprewards.ledger.constants import TOKEN, WAD
from caprewards.ledger.token_ledger import InMemoryTokenLedger
from caprewards.runtime.clock import ManualClock
from caprewards.runtime.engine import RewardsEngine
from caprewards.runtime.errors import (
    AlreadyDistributed,
    DistributionBlockedDuringDepeg,
    EpochNotEnded,
    InvalidConfig,
    MaxTokensPerEpochExceeded,
    MissingRole,
)
from caprewards.runtime.policy import StaticPolicy
from caprewards.runtime.state_invariants import check_invariants

TOL = 10**9


def _close(a: int, b: int, tol: int = TOL) -> bool:
    return abs(int(a) - int(b)) <= tol


def test_price_conversion_and_skim(make_world) -> None:
    w = make_world(price=2 * WAD, skim_bps=1_000)
    s = w.t0 + DAY
    w.configure(1, s)
    w.ledger.mint("alice", 100 * TOKEN)

    w.at(s + w.length)
    allocated, dust = w.distribute(1000 * TOKEN)

    rep = w.engine.get_epoch_report(1)
    assert rep.price == 2 * WAD
    assert rep.gross_tokens == 500 * TOKEN
    assert rep.skim_tokens == 50 * TOKEN
    assert allocated + dust == 450 * TOKEN
    assert rep.tokens_allocated == allocated
    assert rep.dust_carry_after == dust
    assert rep.delta_index == 450 * TOKEN * WAD // (100 * TOKEN * w.length)

    assert w.ledger.balance_of(w.treasury) == 50 * TOKEN
    assert w.policy.band_refreshes == 1
    g = w.engine.state.global_state
    assert g.total_rewards_declared == allocated
    assert g.reward_index == rep.delta_index
    assert g.dust_carry == dust
    check_invariants(w.engine)


def test_skim_is_clamped_by_policy(make_world) -> None:
    w = make_world(skim_bps=9_000)
    assert w.policy.get_distribution_skim_bps() == 5_000


def test_zero_eligible_supply_carries_everything_as_dust(world) -> None:
    s = world.t0 + DAY
    world.configure_series(2, s)

    world.at(s + world.length)
    allocated, dust = world.distribute(100 * TOKEN)
    assert (allocated, dust) == (0, 100 * TOKEN)
    rep = world.engine.get_epoch_report(1)
    assert rep.denominator_units == 0
    assert rep.delta_index == 0

    world.ledger.mint("alice", 100 * TOKEN)
    world.at(s + 2 * world.length)
    allocated, dust = world.distribute(100 * TOKEN)
    assert allocated + dust == 200 * TOKEN
    assert _close(world.pending("alice"), 200 * TOKEN)
    check_invariants(world.engine)


def test_one_distribution_per_epoch(world) -> None:
    s = world.t0 + DAY
    world.configure(1, s)
    world.ledger.mint("alice", 100 * TOKEN)

    with pytest.raises(EpochNotEnded):
        world.distribute(10 * TOKEN)

    world.at(s + world.length - 1)
    with pytest.raises(EpochNotEnded):
        world.distribute(10 * TOKEN)

    world.at(s + world.length)
    world.distribute(10 * TOKEN)
    with pytest.raises(AlreadyDistributed) as ei:
        world.distribute(10 * TOKEN)
    assert ei.value.epoch_id == 1
    assert len(world.engine.state.reports) == 1


def test_backlog_is_distributed_oldest_first(world) -> None:
    s = world.t0 + DAY
    world.configure_series(2, s)
    world.ledger.mint("alice", 100 * TOKEN)

    world.at(s + 2 * world.length + DAY)
    world.distribute(10 * TOKEN)
    assert sorted(world.engine.state.reports) == [1]
    world.distribute(20 * TOKEN)
    assert sorted(world.engine.state.reports) == [1, 2]
    assert world.engine.get_epoch_report(2).coupon_amount == 20 * TOKEN
    with pytest.raises(AlreadyDistributed) as ei:
        world.distribute(30 * TOKEN)
    assert ei.value.epoch_id == 2


def test_depeg_guard(world) -> None:
    s = world.t0 + DAY
    world.configure(1, s)
    world.ledger.mint("alice", 100 * TOKEN)
    world.at(s + world.length)

    world.policy.price = WAD - 1
    world.engine.set_block_distribute_on_depeg(world.admin, True)
    with pytest.raises(DistributionBlockedDuringDepeg):
        world.distribute(100 * TOKEN)
    assert world.engine.state.reports == {}

    world.engine.set_block_distribute_on_depeg(world.admin, False)
    allocated, dust = world.distribute(100 * TOKEN)
    assert allocated + dust == 100 * TOKEN * WAD // (WAD - 1)


def test_mint_cap_per_epoch(world) -> None:
    s = world.t0 + DAY
    world.configure(1, s)
    world.ledger.mint("alice", 100 * TOKEN)
    world.at(s + world.length)

    world.engine.set_max_tokens_to_mint_per_epoch(world.admin, 100 * TOKEN)
    with pytest.raises(MaxTokensPerEpochExceeded) as ei:
        world.distribute(200 * TOKEN)
    assert ei.value.cap == 100 * TOKEN
    assert ei.value.amount == 200 * TOKEN

    allocated, dust = world.distribute(100 * TOKEN)
    assert allocated + dust == 100 * TOKEN


def test_distribute_requires_distributor(world) -> None:
    s = world.t0 + DAY
    world.configure(1, s)
    world.at(s + world.length)

    with pytest.raises(MissingRole) as ei:
        world.engine.distribute("mallory", 10 * TOKEN)
    assert ei.value.role == "distributor"

    # Admin implies every role.
    world.engine.distribute(world.admin, 10 * TOKEN)


def test_negative_coupon_is_rejected(world) -> None:
    s = world.t0 + DAY
    world.configure(1, s)
    world.at(s + world.length)
    with pytest.raises(InvalidConfig):
        world.distribute(-1)


def test_skim_without_treasury_is_a_config_error() -> None:
    clock = ManualClock(1_000_000)
    ledger = InMemoryTokenLedger()
    engine = RewardsEngine(ledger, policy=StaticPolicy(skim_bps=100), clock=clock, admin="ops")
    engine.configure_epoch(
        "ops", epoch_id=1, start=1_000_000, end=1_000_100, checkpoint_start=1_000_050, checkpoint_end=1_000_060
    )
    ledger.mint("alice", TOKEN)
    clock.set(1_000_100)

    with pytest.raises(InvalidConfig) as ei:
        engine.distribute("ops", 10 * TOKEN)
    assert ei.value.reason == "treasury_not_set"
    assert engine.state.reports == {}
    assert ledger.total_supply() == TOKEN


def test_distribution_without_policy_is_a_config_error() -> None:
    clock = ManualClock(0)
    engine = RewardsEngine(InMemoryTokenLedger(), clock=clock, admin="ops")
    engine.configure_epoch("ops", epoch_id=1, start=0, end=100, checkpoint_start=50, checkpoint_end=60)
    clock.set(100)
    with pytest.raises(InvalidConfig) as ei:
        engine.distribute("ops", 1)
    assert ei.value.reason == "policy_not_wired"
