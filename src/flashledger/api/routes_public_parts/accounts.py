from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from flashledger.api.routes_public_parts.common import _address, _executor, _int_param

router = APIRouter()

Json = Dict[str, Any]


def _at(request: Request, at: Optional[str]) -> int:
    t = _executor(request).now()
    return t if at is None else _int_param(at, t)


@router.get("/accounts/{addr}")
def v1_account(addr: str, request: Request, at: Optional[str] = None) -> Json:
    """Balance breakdown for one account.

    `at` (unix seconds) evaluates the active/expired split at another instant;
    it defaults to the time the next operation would run at.
    """
    a = _address(addr)
    view = _executor(request).view()
    t = _at(request, at)
    return {
        "ok": True,
        "address": a,
        "at": t,
        "balance": str(view.balance_of(a)),
        "active": str(view.active_balance_of(a, t)),
        "expired": str(view.expired_balance_of(a, t)),
        "tranches": len(view.flash_balances_of(a)),
        "nonce": view.nonce_of(a),
    }


@router.get("/accounts/{addr}/flash-balances")
def v1_flash_balances(addr: str, request: Request, at: Optional[str] = None) -> Json:
    a = _address(addr)
    view = _executor(request).view()
    t = _at(request, at)
    return {
        "ok": True,
        "address": a,
        "at": t,
        "tranches": [
            {"amount": str(tr.amount), "expires_at": tr.expires_at, "active": tr.is_active(t)}
            for tr in view.flash_balances_of(a)
        ],
    }


@router.get("/accounts/{addr}/allowance/{spender}")
def v1_allowance(addr: str, spender: str, request: Request) -> Json:
    owner = _address(addr, "owner")
    sp = _address(spender, "spender")
    view = _executor(request).view()
    return {"ok": True, "owner": owner, "spender": sp, "allowance": str(view.allowance(owner, sp))}
