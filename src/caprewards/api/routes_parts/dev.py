# src/caprewards/api/routes_parts/dev.py
from __future__ import annotations

"""Dev/testnet-only routes driving the bundled in-memory ledger and policy.

In production the token ledger and the policy manager are external systems;
these routes are never mounted when mode == "prod".
"""

from typing import Any, Callable, Dict

from fastapi import APIRouter, Request

from caprewards.api.errors import ApiError
from caprewards.api.routes_parts.common import _mutate
from caprewards.api.schemas import (
    LedgerBurnRequest,
    LedgerMintRequest,
    LedgerTransferRequest,
    PolicyUpdateRequest,
)
from caprewards.runtime.engine_boot import RewardsRuntime

router = APIRouter()

Json = Dict[str, Any]


def _ledger_call(request: Request, fn: Callable[[RewardsRuntime], None]) -> Json:
    def _run(rt: RewardsRuntime) -> Json:
        try:
            fn(rt)
        except ValueError as e:
            raise ApiError.bad_request("invalid_ledger_call", str(e), {}) from e
        return {"ok": True, "total_supply": rt.ledger.total_supply()}

    return _mutate(request, _run)


@router.post("/dev/ledger/mint")
def dev_ledger_mint(req: LedgerMintRequest, request: Request) -> Json:
    out = _ledger_call(request, lambda rt: rt.ledger.mint(req.account, req.amount))
    out["account"] = req.account
    return out


@router.post("/dev/ledger/burn")
def dev_ledger_burn(req: LedgerBurnRequest, request: Request) -> Json:
    out = _ledger_call(request, lambda rt: rt.ledger.burn(req.account, req.amount))
    out["account"] = req.account
    return out


@router.post("/dev/ledger/transfer")
def dev_ledger_transfer(req: LedgerTransferRequest, request: Request) -> Json:
    return _ledger_call(request, lambda rt: rt.ledger.transfer(req.sender, req.receiver, req.amount))


@router.get("/dev/ledger/balances")
def dev_ledger_balances(request: Request) -> Json:
    rt = request.app.state.runtime
    with request.app.state.write_lock:
        return {"ok": True, "balances": rt.ledger.balances(), "total_supply": rt.ledger.total_supply()}


@router.post("/dev/policy")
def dev_policy(req: PolicyUpdateRequest, request: Request) -> Json:
    def _run(rt: RewardsRuntime) -> Json:
        pol = rt.policy
        if req.price is not None:
            pol.price = req.price
        if req.skim_bps is not None:
            pol.skim_bps = req.skim_bps
        if req.collateral_ratio is not None:
            pol.attest(
                collateral_ratio=req.collateral_ratio,
                at=req.attested_at if req.attested_at is not None else rt.engine.now(),
            )
        elif req.attested_at is not None:
            pol.attested_at = req.attested_at
        if req.max_attestation_age is not None:
            pol.max_attestation_age = req.max_attestation_age
        return {"ok": True, "policy": pol.to_dict()}

    return _mutate(request, _run, touches_policy=True)
