# tests/test_accrual.py
from __future__ import annotations

from caprewards.ledger.constants import SECONDS_PER_DAY as DAY
from caprewards.ledger.constants import TOKEN
from caprewards.runtime.state_invariants import check_invariants

# delta_index is floored, so each payout may be short by up to units / WAD base units.
TOL = 10**9


def _close(a: int, b: int, tol: int = TOL) -> bool:
    return abs(int(a) - int(b)) <= tol


def test_full_epoch_holders_split_pro_rata(world) -> None:
    s = world.t0 + DAY
    world.configure(1, s)
    world.ledger.mint("alice", 100 * TOKEN)
    world.ledger.mint("bob", 300 * TOKEN)

    world.at(s + world.length)
    allocated, dust = world.distribute(1000 * TOKEN)
    assert allocated + dust == 1000 * TOKEN

    a = world.pending("alice")
    b = world.pending("bob")
    assert a + b <= allocated
    assert _close(a, 250 * TOKEN)
    assert _close(b, 750 * TOKEN)

    ep = world.engine.get_epochs()[0]
    assert ep.closed
    assert ep.eligible_units == 400 * TOKEN * world.length
    check_invariants(world.engine)


def test_units_only_accrue_inside_epoch_windows(world) -> None:
    s = world.t0 + 10 * DAY
    world.configure(1, s)
    world.ledger.mint("alice", 50 * TOKEN)

    world.at(s + 5 * DAY)
    state = world.engine.get_account_full_state("alice")
    # Time before the epoch start earns nothing.
    assert state["epoch_units"] == {"1": 50 * TOKEN * 5 * DAY}
    assert state["pending_rewards"] == 0

    g = world.engine.get_global_state()
    assert g["eligible_units"] == 50 * TOKEN * 5 * DAY
    assert g["current_epoch_id"] == 1


def test_late_entry_waits_for_next_epoch(world) -> None:
    s = world.t0 + DAY
    world.configure_series(2, s)
    world.ledger.mint("holder", 100 * TOKEN)

    # One second into the checkpoint window.
    world.at(s + world.cp_start + 1)
    world.ledger.mint("late", 100 * TOKEN)
    acct = world.engine.state.accounts["late"]
    assert acct.late_balance == 100 * TOKEN
    assert acct.late_epoch == 2
    assert acct.entered_epoch == 2
    assert world.engine.state.global_state.late_supply == {2: 100 * TOKEN}

    world.at(s + world.length)
    world.distribute(600 * TOKEN)
    assert world.pending("late") == 0
    assert _close(world.pending("holder"), 600 * TOKEN)

    world.at(s + 2 * world.length)
    world.distribute(600 * TOKEN)
    assert _close(world.pending("late"), 300 * TOKEN)
    assert _close(world.pending("holder"), 900 * TOKEN)
    assert world.engine.state.global_state.late_supply == {}
    check_invariants(world.engine)


def test_increase_before_checkpoint_is_eligible_immediately(world) -> None:
    s = world.t0 + DAY
    world.configure(1, s)
    world.ledger.mint("early", 100 * TOKEN)

    world.at(s + world.cp_start - 1)
    world.ledger.mint("just_in_time", 100 * TOKEN)
    assert world.engine.state.accounts["just_in_time"].late_balance == 0

    world.at(s + world.length)
    world.distribute(1000 * TOKEN)
    t = world.length
    late_share = 1000 * TOKEN * (DAY * 10 + 1) // (t + DAY * 10 + 1)
    assert _close(world.pending("just_in_time"), late_share)


def test_sell_before_checkpoint_is_proportional(world) -> None:
    s = world.t0 + DAY
    world.configure(1, s)
    world.ledger.mint("alice", 100 * TOKEN)
    world.ledger.mint("seller", 100 * TOKEN)

    world.at(s + 10 * DAY)
    world.ledger.transfer("seller", "buyer", 100 * TOKEN)
    assert world.engine.state.global_state.future_breakage_units == 0

    world.at(s + world.length)
    world.distribute(600 * TOKEN)
    assert _close(world.pending("alice"), 300 * TOKEN)
    assert _close(world.pending("seller"), 100 * TOKEN)
    assert _close(world.pending("buyer"), 200 * TOKEN)
    assert world.engine.get_epoch_report(1).breakage_tokens == 0
    assert world.ledger.balance_of(world.sink) == 0
    check_invariants(world.engine)


def test_partial_sell_before_checkpoint_keeps_a_proportional_share(world) -> None:
    s = world.t0 + DAY
    world.configure(1, s)
    world.ledger.mint("holder_a", 100_000 * TOKEN)
    world.ledger.mint("holder_b", 100_000 * TOKEN)

    world.at(s + 10 * DAY)
    world.ledger.transfer("holder_a", "buyer", 50_000 * TOKEN)

    world.at(s + world.length)
    world.distribute(600 * TOKEN)
    a = world.pending("holder_a")
    b = world.pending("holder_b")
    assert b > a > 0
    # a: 100k * 10d + 50k * 20d, b: 100k * 30d, buyer: 50k * 20d.
    # Larger balances widen the flooring error of delta_index.
    tol = 10**12
    assert _close(a, 200 * TOKEN, tol)
    assert _close(b, 300 * TOKEN, tol)
    assert _close(world.pending("buyer"), 100 * TOKEN, tol)
    check_invariants(world.engine)


def test_epoch_configured_mid_window_accrues_from_then_on(world) -> None:
    world.ledger.mint("alice", 100 * TOKEN)
    ep = world.configure(1, world.t0 - 10 * DAY)
    assert ep.accrual_start == world.t0

    world.at(world.t0 + 5 * DAY)
    world.ledger.mint("bob", 100 * TOKEN)
    assert world.engine.state.accounts["bob"].late_balance == 0

    world.at(ep.end_time)
    allocated, dust = world.distribute(350 * TOKEN)
    assert allocated + dust == 350 * TOKEN

    closed = world.engine.get_epochs()[0]
    # Only the part of the window after configuration counts.
    assert closed.eligible_units == 100 * TOKEN * 20 * DAY + 100 * TOKEN * 15 * DAY
    assert _close(world.pending("alice"), 200 * TOKEN)
    assert _close(world.pending("bob"), 150 * TOKEN)
    check_invariants(world.engine)


def test_gap_between_epochs_accrues_nothing(world) -> None:
    s = world.t0 + DAY
    world.configure(1, s)
    world.configure(2, s + world.length + 10 * DAY)
    world.ledger.mint("alice", 100 * TOKEN)

    world.at(s + world.length)
    world.distribute(300 * TOKEN)

    # Arriving during the gap is not late: eligible for all of epoch 2.
    world.at(s + world.length + 5 * DAY)
    world.ledger.mint("bob", 100 * TOKEN)
    assert world.engine.state.accounts["bob"].entered_epoch == 2
    assert world.engine.state.accounts["bob"].late_balance == 0

    world.at(s + 2 * world.length + 10 * DAY)
    world.distribute(300 * TOKEN)
    assert world.engine.get_epochs()[1].eligible_units == 200 * TOKEN * world.length
    assert _close(world.pending("alice"), 450 * TOKEN)
    assert _close(world.pending("bob"), 150 * TOKEN)
    check_invariants(world.engine)


def test_settling_twice_at_same_time_is_a_noop(world) -> None:
    s = world.t0 + DAY
    world.configure(1, s)
    world.ledger.mint("alice", 100 * TOKEN)
    world.at(s + 3 * DAY)

    first = world.engine.get_account_full_state("alice")
    second = world.engine.get_account_full_state("alice")
    assert first == second
    # Views never write back.
    assert world.engine.state.accounts["alice"].epoch_units == {}
