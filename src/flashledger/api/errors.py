from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

Json = Dict[str, Any]


def error_response(status_code: int, code: str, message: str, details: Optional[Json] = None) -> JSONResponse:
    """The one error body shape the API emits: {"ok": false, "error": {...}}."""
    return JSONResponse(
        status_code=int(status_code),
        content={"ok": False, "error": {"code": code, "message": message, "details": details or {}}},
    )


@dataclass(slots=True)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Json = field(default_factory=dict)

    @classmethod
    def bad_request(cls, code: str, message: str, details: Optional[Json] = None) -> "ApiError":
        return cls(400, code, message, details or {})

    @classmethod
    def not_found(cls, code: str, message: str, details: Optional[Json] = None) -> "ApiError":
        return cls(404, code, message, details or {})

    @classmethod
    def internal(cls, code: str, message: str, details: Optional[Json] = None) -> "ApiError":
        return cls(500, code, message, details or {})


# ledger rejection code -> HTTP status; unknown codes are 400
REJECT_STATUS = {
    "invalid_payload": 400,
    "invalid_tx": 400,
    "tx_unimplemented": 400,
    "forbidden": 403,
    "bad_nonce": 409,
    "insufficient_balance": 409,
}


def from_receipt(receipt: Json) -> ApiError:
    """Error for a rejected receipt. The seq it consumed goes into details."""
    code = str(receipt.get("code") or "rejected")
    return ApiError(
        REJECT_STATUS.get(code, 400),
        code,
        str(receipt.get("reason") or "tx rejected"),
        {"seq": receipt.get("seq"), "details": receipt.get("details")},
    )


async def api_error_handler(_request: Request, exc: ApiError) -> JSONResponse:
    return error_response(exc.status_code, exc.code, exc.message, exc.details)
