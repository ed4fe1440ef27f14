from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from flashledger.api.routes_public_parts.common import _view

router = APIRouter()


@router.get("/token")
def v1_token(request: Request) -> Dict[str, Any]:
    info = _view(request).token_info()
    # uint256 amounts do not survive JSON number parsing in most clients
    info["total_supply"] = str(info["total_supply"])
    return {"ok": True, "token": info}
