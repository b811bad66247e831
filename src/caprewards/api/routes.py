from __future__ import annotations

from fastapi import APIRouter

from caprewards.api.routes_parts.admin import router as admin_router
from caprewards.api.routes_parts.dev import router as dev_router
from caprewards.api.routes_parts.health import router as health_router
from caprewards.api.routes_parts.metrics import router as metrics_router
from caprewards.api.routes_parts.rewards import router as rewards_router


def build_router(*, include_dev: bool) -> APIRouter:
    r = APIRouter()

    # Versioned API surface
    r.include_router(health_router, prefix="/v1", tags=["health"])
    r.include_router(rewards_router, prefix="/v1", tags=["rewards"])
    r.include_router(admin_router, prefix="/v1", tags=["admin"])

    # Ops
    r.include_router(metrics_router, prefix="/v1", tags=["metrics"])

    # Bundled ledger/policy drivers (dev/testnet only)
    if include_dev:
        r.include_router(dev_router, prefix="/v1", tags=["dev"])
    return r
