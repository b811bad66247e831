from __future__ import annotations

import logging
import os
import threading
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from caprewards.api.errors import ApiError
from caprewards.api.routes import build_router
from caprewards.api.structured_logging import RequestLogMiddleware
from caprewards.runtime.config import apply_engine_config_to_env, load_engine_config
from caprewards.runtime.engine_boot import RewardsRuntime
from caprewards.runtime.engine_boot import build_runtime as _build_runtime
from caprewards.runtime.errors import RewardsError
from caprewards.runtime.rewards_logging import configure_structured_logging, log_event

_log = logging.getLogger("caprewards.api")


def build_runtime() -> RewardsRuntime:
    """Build the RewardsRuntime for the API process.

    This wrapper exists so tests can monkeypatch `caprewards.api.app.build_runtime`
    without reaching into runtime modules.
    """
    cfg = load_engine_config()
    apply_engine_config_to_env(cfg)
    return _build_runtime(cfg)


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RewardsError)
    async def _rewards_error(request: Request, exc: RewardsError) -> JSONResponse:
        err = ApiError.from_rewards_error(exc)
        log_event(
            _log,
            "call_rejected",
            path=str(request.url.path or ""),
            code=err.code,
            reason=err.message,
            status=err.status_code,
        )
        return JSONResponse(status_code=err.status_code, content=err.to_body())


def create_app(*, boot_runtime: bool = True, runtime: Optional[RewardsRuntime] = None) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load config, restore/create the engine, attach it
      - False: keep lightweight for unit tests / import-time validation
    runtime:
      - an already-built RewardsRuntime to attach (tests, embedding); wins over boot_runtime

    Dev ledger/policy routes are mounted only when the runtime's mode is not "prod".
    """
    configure_structured_logging()

    if runtime is None and boot_runtime:
        runtime = build_runtime()

    if runtime is not None:
        mode = runtime.cfg.mode
    else:
        mode = os.environ.get("CAPREWARDS_MODE", "prod").strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="CAP Rewards API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="CAP Rewards API")

    app.state.runtime = runtime
    app.state.write_lock = threading.Lock()

    app.add_middleware(RequestLogMiddleware)
    _install_error_handlers(app)

    app.include_router(build_router(include_dev=mode != "prod"))
    return app
