# tests/test_claims.py
from __future__ import annotations

import pytest

from caprewards.ledger.constants import SECONDS_PER_DAY as DAY
from caprewards.ledger.constants import TOKEN, WAD
from caprewards.runtime.claims import cr_headroom
from caprewards.runtime.errors import (
    ClaimExceedsHeadroom,
    InvalidConfig,
    MaxClaimPerTxExceeded,
    NoRewardsDeclared,
    StaleAttestationForClaim,
)
from caprewards.runtime.state_invariants import check_invariants


def _one_distributed_epoch(w, coupon: int = 200 * TOKEN) -> int:
    s = w.t0 + DAY
    w.configure_series(2, s)
    w.ledger.mint("alice", 100 * TOKEN)
    w.ledger.mint("bob", 100 * TOKEN)
    w.at(s + w.length)
    w.distribute(coupon)
    return s


def test_claim_before_any_distribution_raises(world) -> None:
    world.configure(1, world.t0 + DAY)
    world.ledger.mint("alice", 100 * TOKEN)
    with pytest.raises(NoRewardsDeclared):
        world.engine.claim("alice")


def test_claim_mints_pending_and_is_idempotent(world) -> None:
    _one_distributed_epoch(world)
    pending = world.pending("alice")
    assert pending > 0

    claimed = world.engine.claim("alice")
    assert claimed == pending
    assert world.ledger.balance_of("alice") == 100 * TOKEN + claimed
    assert world.pending("alice") == 0

    assert world.engine.claim("alice") == 0
    assert world.ledger.balance_of("alice") == 100 * TOKEN + claimed

    acct = world.engine.state.accounts["alice"]
    assert acct.total_claimed == claimed
    assert acct.accrued_rewards == 0
    assert acct.reward_debt_index == world.engine.state.global_state.reward_index

    g = world.engine.state.global_state
    assert g.total_rewards_claimed == claimed
    assert g.total_rewards_claimed <= g.total_rewards_declared
    check_invariants(world.engine)


def test_claim_for_unknown_account_returns_zero(world) -> None:
    _one_distributed_epoch(world)
    assert world.engine.claim("nobody") == 0
    assert "nobody" not in world.engine.state.accounts


def test_claimed_tokens_compound_from_the_next_epoch(world) -> None:
    s = _one_distributed_epoch(world)
    claimed = world.engine.claim("alice")

    # Claimed at the boundary, i.e. before epoch 2's checkpoint: fully eligible.
    acct = world.engine.state.accounts["alice"]
    assert acct.late_balance == 0
    assert world.engine.state.global_state.accrual_rate == 200 * TOKEN + claimed

    bob_epoch1 = world.pending("bob")
    assert bob_epoch1 == claimed

    world.at(s + 2 * world.length)
    world.distribute(200 * TOKEN)
    # Alice's pending is epoch 2 only; bob's still includes epoch 1.
    alice_epoch2 = world.pending("alice")
    bob_epoch2 = world.pending("bob") - bob_epoch1
    assert alice_epoch2 > bob_epoch2
    alice_total = world.ledger.balance_of("alice") + world.pending("alice")
    bob_total = world.ledger.balance_of("bob") + world.pending("bob")
    assert alice_total > bob_total


def test_stale_attestation_is_checked_first(make_world) -> None:
    w = make_world(collateral_ratio=WAD, max_attestation_age=DAY)
    _one_distributed_epoch(w)
    w.engine.set_enforce_cr_on_claim(w.admin, True)

    # CR at parity would also fail headroom; staleness wins.
    with pytest.raises(StaleAttestationForClaim):
        w.engine.claim("alice")

    w.policy.attest(collateral_ratio=2 * WAD, at=w.engine.now())
    assert w.engine.claim("alice") > 0


def test_claim_limited_by_cr_headroom(make_world) -> None:
    w = make_world(collateral_ratio=WAD + WAD // 100)
    _one_distributed_epoch(w)
    w.engine.set_enforce_cr_on_claim(w.admin, True)

    with pytest.raises(ClaimExceedsHeadroom) as ei:
        w.engine.claim("alice")
    assert ei.value.headroom == cr_headroom(w.ledger.total_supply(), WAD + WAD // 100)
    assert ei.value.headroom == 2 * TOKEN
    assert w.ledger.balance_of("alice") == 100 * TOKEN

    w.policy.attest(collateral_ratio=3 * WAD, at=w.engine.now())
    assert w.engine.claim("alice") > 0


def test_cr_enforcement_needs_a_collateral_ratio(world) -> None:
    _one_distributed_epoch(world)
    world.engine.set_enforce_cr_on_claim(world.admin, True)
    with pytest.raises(InvalidConfig) as ei:
        world.engine.claim("alice")
    assert ei.value.reason == "collateral_ratio_not_wired"


def test_per_transaction_cap(world) -> None:
    _one_distributed_epoch(world)
    world.engine.set_max_claim_tokens_per_tx(world.admin, 10 * TOKEN)

    with pytest.raises(MaxClaimPerTxExceeded) as ei:
        world.engine.claim("alice")
    assert ei.value.cap == 10 * TOKEN
    assert ei.value.pending == world.pending("alice")

    world.engine.set_max_claim_tokens_per_tx(world.admin, 0)
    assert world.engine.claim("alice") == ei.value.pending


def test_headroom_helper() -> None:
    assert cr_headroom(1000, WAD) == 0
    assert cr_headroom(1000, WAD - 1) == 0
    assert cr_headroom(1000, 2 * WAD) == 1000
    assert cr_headroom(1000, WAD + WAD // 2) == 500
