# src/caprewards/api/routes_parts/rewards.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from caprewards.api.errors import ApiError
from caprewards.api.routes_parts.common import _mutate, _read
from caprewards.api.schemas import ClaimRequest, ConfigureEpochRequest, DistributeRequest
from caprewards.runtime.engine_boot import RewardsRuntime

router = APIRouter()

Json = Dict[str, Any]


@router.get("/rewards/state")
def rewards_state(request: Request) -> Json:
    """Global accounting projected to now, plus wiring and guard settings."""

    def _view(rt: RewardsRuntime) -> Json:
        st = rt.engine.state
        return {
            "ok": True,
            "now": rt.engine.now(),
            "global": rt.engine.get_global_state(),
            "guards": st.guards.to_dict(),
            "roles": {k: sorted(v) for k, v in sorted(st.roles.items())},
            "treasury": st.treasury,
            "breakage_sink": st.breakage_sink,
            "total_supply": rt.ledger.total_supply(),
        }

    return _read(request, _view)


@router.get("/rewards/phase")
def rewards_phase(request: Request) -> Json:
    def _view(rt: RewardsRuntime) -> Json:
        now = rt.engine.now()
        cur = rt.engine.scheduler.current_epoch(now)
        phase = rt.engine.current_phase()
        return {
            "ok": True,
            "now": now,
            "epoch_id": cur.id if cur is not None else None,
            "phase": phase.value if phase is not None else None,
        }

    return _read(request, _view)


@router.get("/rewards/epochs")
def rewards_epochs(request: Request) -> Json:
    return _read(request, lambda rt: {"ok": True, "epochs": [e.to_dict() for e in rt.engine.get_epochs()]})


@router.get("/rewards/epochs/{epoch_id}/report")
def rewards_epoch_report(epoch_id: int, request: Request) -> Json:
    rep = _read(request, lambda rt: rt.engine.get_epoch_report(epoch_id))
    if rep is None:
        raise ApiError.not_found("report_not_found", "epoch has not been distributed", {"epoch_id": epoch_id})
    return {"ok": True, "report": rep.to_dict()}


@router.get("/rewards/accounts/{account}")
def rewards_account(account: str, request: Request) -> Json:
    return {"ok": True, "account": _read(request, lambda rt: rt.engine.get_account_full_state(account))}


@router.get("/rewards/accounts/{account}/pending")
def rewards_account_pending(account: str, request: Request) -> Json:
    pending = _read(request, lambda rt: rt.engine.pending_rewards(account))
    return {"ok": True, "account": account, "pending_rewards": pending}


@router.post("/rewards/epochs")
def rewards_configure_epoch(req: ConfigureEpochRequest, request: Request) -> Json:
    ep = _mutate(
        request,
        lambda rt: rt.engine.configure_epoch(
            req.caller,
            epoch_id=req.epoch_id,
            start=req.start,
            end=req.end,
            checkpoint_start=req.checkpoint_start,
            checkpoint_end=req.checkpoint_end,
        ),
    )
    return {"ok": True, "epoch": ep.to_dict()}


@router.post("/rewards/distribute")
def rewards_distribute(req: DistributeRequest, request: Request) -> Json:
    def _run(rt: RewardsRuntime) -> Json:
        allocated, dust = rt.engine.distribute(req.caller, req.coupon_amount)
        epoch_id = max(rt.engine.state.reports)
        return {
            "ok": True,
            "tokens_allocated": allocated,
            "dust_carry": dust,
            "report": rt.engine.state.reports[epoch_id].to_dict(),
        }

    return _mutate(request, _run)


@router.post("/rewards/claim")
def rewards_claim(req: ClaimRequest, request: Request) -> Json:
    amount = _mutate(request, lambda rt: rt.engine.claim(req.account))
    return {"ok": True, "account": req.account, "claimed": amount}
