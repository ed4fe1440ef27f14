from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from flashledger.api.routes_public_parts.common import _executor

router = APIRouter()


@router.get("/status")
def v1_status(request: Request) -> Dict[str, Any]:
    ex = _executor(request)
    st = ex.read_state()
    accounts = st.get("accounts") if isinstance(st.get("accounts"), dict) else {}
    return {
        "ok": True,
        "chain_id": st.get("chain_id"),
        "mode": request.app.state.cfg.mode,
        "seq": int(st.get("seq", 0)),
        "ledger_time": int(st.get("time", 0)),
        "now": ex.now(),
        "accounts": len(accounts),
        "total_supply": str((st.get("token") or {}).get("total_supply", 0)),
    }
