# src/caprewards/runtime/state_invariants.py
from __future__ import annotations

"""Consistency checks over a live engine.

The engine keeps its supply counters as O(1) running totals updated on every
balance change; nothing recomputes them from scratch during normal operation.
This module is the one place that does, so tests (and operators, via a debug
call) can confirm the running totals still agree with the token ledger:

  1. eligible_supply == ledger.total_supply() - total_excluded_supply
  2. global total_supply mirrors the ledger
  3. total_rewards_claimed <= total_rewards_declared
  4. sum(report.tokens_allocated) == total_rewards_declared
  5. every mirrored account balance equals the ledger balance
  6. accrual_rate + pending late supply == sum of non-excluded balances
"""

from typing import Any, Dict, List

from caprewards.runtime.errors import InvariantViolation

Json = Dict[str, Any]


def collect_violations(engine: Any) -> List[Json]:
    """Return every broken invariant as {"reason": ..., **details}; empty when healthy."""
    st = engine.state
    g = st.global_state
    ledger = engine.ledger
    out: List[Json] = []

    supply = int(ledger.total_supply())
    if int(g.eligible_supply) != supply - int(g.total_excluded_supply):
        out.append(
            {
                "reason": "eligible_supply_mismatch",
                "eligible_supply": int(g.eligible_supply),
                "total_supply": supply,
                "total_excluded_supply": int(g.total_excluded_supply),
            }
        )

    if int(g.total_supply) != supply:
        out.append({"reason": "total_supply_mismatch", "mirrored": int(g.total_supply), "ledger": supply})

    if int(g.total_rewards_claimed) > int(g.total_rewards_declared):
        out.append(
            {
                "reason": "claimed_exceeds_declared",
                "claimed": int(g.total_rewards_claimed),
                "declared": int(g.total_rewards_declared),
            }
        )

    allocated = sum(int(r.tokens_allocated) for r in st.reports.values())
    if allocated != int(g.total_rewards_declared):
        out.append(
            {"reason": "declared_mismatch", "allocated": allocated, "declared": int(g.total_rewards_declared)}
        )

    included = 0
    excluded = 0
    for account_id, acct in st.accounts.items():
        on_ledger = int(ledger.balance_of(account_id))
        if int(acct.balance) != on_ledger:
            out.append(
                {
                    "reason": "balance_mismatch",
                    "account": account_id,
                    "mirrored": int(acct.balance),
                    "ledger": on_ledger,
                }
            )
        if acct.excluded:
            excluded += int(acct.balance)
        else:
            included += int(acct.balance)

    if excluded != int(g.total_excluded_supply):
        out.append(
            {"reason": "excluded_supply_mismatch", "sum": excluded, "counter": int(g.total_excluded_supply)}
        )

    rate = int(g.accrual_rate) + sum(int(v) for v in g.late_supply.values())
    if rate != included:
        out.append({"reason": "accrual_rate_mismatch", "rate_plus_late": rate, "included_balances": included})

    return out


def check_invariants(engine: Any) -> None:
    """Raise InvariantViolation on the first broken invariant."""
    bad = collect_violations(engine)
    if bad:
        first = dict(bad[0])
        reason = str(first.pop("reason"))
        raise InvariantViolation(reason, {**first, "violations": len(bad)})


__all__ = ["check_invariants", "collect_violations"]
