# src/caprewards/api/routes_parts/admin.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from caprewards.api.routes_parts.common import _mutate
from caprewards.api.schemas import AdminSettingsRequest, ExclusionRequest, RoleRequest
from caprewards.runtime.engine_boot import RewardsRuntime

router = APIRouter()

Json = Dict[str, Any]


@router.post("/rewards/exclusions")
def rewards_set_exclusion(req: ExclusionRequest, request: Request) -> Json:
    changed = _mutate(request, lambda rt: rt.engine.set_account_excluded(req.caller, req.account, req.excluded))
    return {"ok": True, "account": req.account, "excluded": req.excluded, "changed": changed}


@router.post("/rewards/admin/settings")
def rewards_admin_settings(req: AdminSettingsRequest, request: Request) -> Json:
    def _apply(rt: RewardsRuntime) -> Json:
        eng = rt.engine
        applied: Json = {}
        if req.treasury is not None:
            eng.set_treasury(req.caller, req.treasury)
            applied["treasury"] = req.treasury
        if req.breakage_sink is not None:
            eng.set_breakage_sink(req.caller, req.breakage_sink)
            applied["breakage_sink"] = req.breakage_sink
        if req.enforce_cr_on_claim is not None:
            eng.set_enforce_cr_on_claim(req.caller, req.enforce_cr_on_claim)
            applied["enforce_cr_on_claim"] = req.enforce_cr_on_claim
        if req.max_claim_tokens_per_tx is not None:
            eng.set_max_claim_tokens_per_tx(req.caller, req.max_claim_tokens_per_tx)
            applied["max_claim_tokens_per_tx"] = req.max_claim_tokens_per_tx
        if req.max_tokens_to_mint_per_epoch is not None:
            eng.set_max_tokens_to_mint_per_epoch(req.caller, req.max_tokens_to_mint_per_epoch)
            applied["max_tokens_to_mint_per_epoch"] = req.max_tokens_to_mint_per_epoch
        if req.block_distribute_on_depeg is not None:
            eng.set_block_distribute_on_depeg(req.caller, req.block_distribute_on_depeg)
            applied["block_distribute_on_depeg"] = req.block_distribute_on_depeg
        return applied

    applied = _mutate(request, _apply)
    return {"ok": True, "applied": applied}


@router.post("/rewards/admin/roles")
def rewards_admin_roles(req: RoleRequest, request: Request) -> Json:
    def _apply(rt: RewardsRuntime) -> bool:
        if req.granted:
            return rt.engine.grant_role(req.caller, req.role, req.account)
        return rt.engine.revoke_role(req.caller, req.role, req.account)

    changed = _mutate(request, _apply)
    return {"ok": True, "role": req.role, "account": req.account, "granted": req.granted, "changed": changed}
