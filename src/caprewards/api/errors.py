from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from caprewards.runtime.errors import AccessError, GuardError, RewardsError


@dataclass(eq=False)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    def to_body(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def forbidden(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(403, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def conflict(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(409, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    @staticmethod
    def from_rewards_error(e: RewardsError) -> "ApiError":
        details = e.details if isinstance(e.details, dict) else ({} if e.details is None else {"value": e.details})
        if isinstance(e, AccessError):
            return ApiError.forbidden(e.code, e.reason, details)
        if isinstance(e, GuardError):
            return ApiError.conflict(e.code, e.reason, details)
        return ApiError.bad_request(e.code, e.reason, details)
