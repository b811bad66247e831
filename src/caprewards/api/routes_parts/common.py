from __future__ import annotations

from typing import Any, Callable, Dict, TypeVar

from fastapi import Request

from caprewards.api.errors import ApiError
from caprewards.runtime.engine import RewardsEngine
from caprewards.runtime.engine_boot import RewardsRuntime

Json = Dict[str, Any]
T = TypeVar("T")


def _runtime(request: Request) -> RewardsRuntime:
    rt = getattr(request.app.state, "runtime", None)
    if rt is None:
        raise ApiError.internal("not_ready", "runtime not attached to app.state", {})
    return rt


def _engine(request: Request) -> RewardsEngine:
    return _runtime(request).engine


def _read(request: Request, fn: Callable[[RewardsRuntime], T]) -> T:
    """Run a read under the write lock so it never observes a half-applied call."""
    rt = _runtime(request)
    with request.app.state.write_lock:
        return fn(rt)


def _mutate(request: Request, fn: Callable[[RewardsRuntime], T], *, touches_policy: bool = False) -> T:
    """Apply a mutation and persist the snapshot as one unit.

    Requests are serialized by the process-level lock. A failure while
    persisting rolls the in-memory engine back as well. The policy sits
    outside the engine journal, so callers that edit it pass touches_policy.
    """
    rt = _runtime(request)
    with request.app.state.write_lock:
        saved_policy = rt.policy.to_dict() if touches_policy else None
        try:
            with rt.engine.transaction():
                out = fn(rt)
                rt.persist()
        except Exception:
            if saved_policy is not None:
                rt.policy.restore(saved_policy)
            raise
        return out
