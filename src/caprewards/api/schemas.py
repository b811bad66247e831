from __future__ import annotations

"""Pydantic request schemas for the HTTP API.

These exist only for HTTP input validation. Engine-level validation (epoch
ordering, role checks, guard limits) still happens in the runtime, which is
the single source of truth for every rule.

Every mutating request names its `caller`; the service trusts it. Deploy
behind an authenticating gateway that sets it.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ConfigureEpochRequest(BaseModel):
    caller: str = Field(..., min_length=1, description="Admin account")
    epoch_id: int = Field(..., ge=1)
    start: int = Field(..., ge=0, description="Unix seconds, inclusive")
    end: int = Field(..., ge=0, description="Unix seconds, exclusive")
    checkpoint_start: int = Field(..., ge=0)
    checkpoint_end: int = Field(..., ge=0)


class ExclusionRequest(BaseModel):
    caller: str = Field(..., min_length=1)
    account: str = Field(..., min_length=1)
    excluded: bool = True


class DistributeRequest(BaseModel):
    caller: str = Field(..., min_length=1, description="Distributor (or admin) account")
    coupon_amount: int = Field(..., ge=0, description="Coupon value, base units")


class ClaimRequest(BaseModel):
    account: str = Field(..., min_length=1, description="Account whose rewards are minted")
    caller: Optional[str] = Field(default=None, description="Informational; anyone may trigger a claim")


class AdminSettingsRequest(BaseModel):
    """Partial update; omitted fields are left unchanged. Applied all-or-nothing."""

    caller: str = Field(..., min_length=1)
    treasury: Optional[str] = None
    breakage_sink: Optional[str] = None
    enforce_cr_on_claim: Optional[bool] = None
    max_claim_tokens_per_tx: Optional[int] = Field(default=None, ge=0)
    max_tokens_to_mint_per_epoch: Optional[int] = Field(default=None, ge=0)
    block_distribute_on_depeg: Optional[bool] = None


class RoleRequest(BaseModel):
    caller: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)
    account: str = Field(..., min_length=1)
    granted: bool = True


# ---- dev-only (mode != prod) ----


class LedgerMintRequest(BaseModel):
    account: str = Field(..., min_length=1)
    amount: int = Field(..., ge=0)


class LedgerBurnRequest(BaseModel):
    account: str = Field(..., min_length=1)
    amount: int = Field(..., ge=0)


class LedgerTransferRequest(BaseModel):
    sender: str = Field(..., min_length=1)
    receiver: str = Field(..., min_length=1)
    amount: int = Field(..., ge=0)


class PolicyUpdateRequest(BaseModel):
    price: Optional[int] = Field(default=None, gt=0, description="WAD fixed point")
    skim_bps: Optional[int] = Field(default=None, ge=0)
    collateral_ratio: Optional[int] = Field(default=None, ge=0, description="WAD fixed point")
    attested_at: Optional[int] = Field(default=None, ge=0)
    max_attestation_age: Optional[int] = Field(default=None, ge=0)
