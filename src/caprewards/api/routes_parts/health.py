from __future__ import annotations

import time
from typing import Any, Dict

from fastapi import APIRouter, Request

from caprewards import __version__

router = APIRouter()

Json = Dict[str, Any]


@router.get("/health")
def health(request: Request) -> Json:
    rt = getattr(request.app.state, "runtime", None)
    out: Json = {
        "ok": True,
        "service": "caprewards",
        "version": __version__,
        "ts_ms": int(time.time() * 1000),
        "ready": rt is not None,
    }
    if rt is not None:
        out["mode"] = rt.cfg.mode
        out["persistent"] = rt.store is not None
    return out
