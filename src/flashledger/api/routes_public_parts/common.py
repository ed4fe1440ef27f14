from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from flashledger.api.errors import ApiError
from flashledger.ledger.address import normalize_address
from flashledger.ledger.state import TokenView

Json = Dict[str, Any]


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _view(request: Request) -> TokenView:
    return _executor(request).view()


def _address(v: Any, field: str = "address") -> str:
    addr = normalize_address(v)
    if not addr:
        raise ApiError.bad_request("bad_address", f"{field} is not a valid address", {field: v})
    return addr


def _int_param(v: Any, default: int) -> int:
    """Parse an int-ish query param safely."""
    if v is None:
        return int(default)
    try:
        return int(str(v).strip())
    except ValueError:
        return int(default)
