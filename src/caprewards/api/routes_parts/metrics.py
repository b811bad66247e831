from __future__ import annotations

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse

from caprewards.runtime import metrics as rewards_metrics

router = APIRouter()


@router.get("/metrics")
def metrics(format: str = "prometheus") -> Response:
    """Engine counters/gauges (distributions, claims, breakage events, reverted calls).

    Off unless CAPREWARDS_METRICS_ENABLED=1. `?format=json` returns the raw snapshot.
    """
    if not rewards_metrics.metrics_enabled():
        return Response(status_code=404, content="not_found\n", media_type="text/plain")
    if format.strip().lower() == "json":
        return JSONResponse({"ok": True, "metrics": rewards_metrics.snapshot()})
    return Response(content=rewards_metrics.format_prometheus(), media_type="text/plain")
