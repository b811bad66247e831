# src/caprewards/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from caprewards.runtime import metrics
from caprewards.runtime.rewards_logging import log_event

_OFF = {"0", "false", "no", "n", "off"}

# First path segment after /v1 -> surface name used in logs and metrics.
_SURFACES = {"rewards": "rewards", "dev": "dev", "health": "ops", "metrics": "ops"}


def _surface(path: str) -> str:
    parts = [p for p in path.split("/") if p]
    if parts and parts[0] == "v1":
        parts = parts[1:]
    if not parts:
        return "other"
    if parts[0] == "rewards" and len(parts) > 1 and parts[1] in {"admin", "exclusions"}:
        return "admin"
    return _SURFACES.get(parts[0], "other")


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` JSONL event per request, plus request counters.

    CAPREWARDS_LOG_REQUESTS=0 turns the events off; counters stay on.
    Requests are counted per surface (rewards, admin, dev, ops). A gateway may
    forward the authenticated caller as `x-caller`; it is logged, not trusted.
    The request id is taken from `x-request-id` or generated, and echoed back.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        raw = (os.environ.get("CAPREWARDS_LOG_REQUESTS") or "1").strip().lower()
        self._log_enabled = raw not in _OFF
        self._logger = logging.getLogger("caprewards.http")

    async def dispatch(self, request: Request, call_next):
        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        path = str(request.url.path or "")
        surface = _surface(path)

        status = 500
        err: Optional[str] = None
        response: Optional[Response] = None
        try:
            response = await call_next(request)
            status = int(response.status_code)
            return response
        except Exception as e:
            err = type(e).__name__
            raise
        finally:
            metrics.inc_counter(f"http_{surface}_requests")
            if status >= 500:
                metrics.inc_counter("http_server_errors")
            if self._log_enabled:
                log_event(
                    self._logger,
                    "http_request",
                    request_id=request_id,
                    method=request.method,
                    path=path,
                    surface=surface,
                    mutating=request.method not in {"GET", "HEAD", "OPTIONS"},
                    caller=request.headers.get("x-caller") or None,
                    status=status,
                    duration_ms=int((time.monotonic() - started) * 1000),
                    error=err,
                )
            if response is not None:
                response.headers.setdefault("x-request-id", request_id)
