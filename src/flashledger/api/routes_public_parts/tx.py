from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from flashledger.api.errors import ApiError, from_receipt
from flashledger.api.routes_public_parts.common import _executor
from flashledger.api.schemas import TxSubmitRequest

router = APIRouter()

Json = Dict[str, Any]


@router.post("/tx/submit")
def tx_submit(body: TxSubmitRequest, request: Request) -> Json:
    """Apply one ledger operation.

    The executor always writes a receipt; a rejected op is reported as an
    error response that still carries its seq. A `now` override is honored
    only outside prod.
    """
    ex = _executor(request)
    now = None if request.app.state.cfg.is_prod else body.now

    receipt = ex.submit_tx(body.envelope(), now=now)
    if not receipt.get("ok"):
        raise from_receipt(receipt)
    return {"ok": True, "receipt": receipt}


@router.get("/tx/receipt/{seq}")
def tx_receipt(seq: int, request: Request) -> Json:
    r = _executor(request).receipt(seq)
    if r is None:
        raise ApiError.not_found("not_found", "receipt not found", {"seq": seq})
    return {"ok": True, "receipt": r}
