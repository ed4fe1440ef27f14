# src/flashledger/runtime/apply/token.py
from __future__ import annotations

"""Flash token domain: tranche-backed BEP20 entry points.

State touched:
  state["accounts"][addr] = {"balance": int, "tranches": [{"amount", "expires_at"}, ...]}
  state["token"]["total_supply"], state["token"]["metadata_uri"]
  state["allowances"][owner][spender] = int
  state["params"]["owner"]  (minting authority)
  state["time"]             (unix seconds for the operation being applied)

Every applier validates and reads first, then writes. apply_tx() also runs
each tx against a scratch copy of the state, so a raise anywhere leaves the
caller's state untouched.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from flashledger.ledger.address import is_zero_address, normalize_address
from flashledger.ledger.constants import (
    EV_APPROVAL,
    EV_EXPIRED_BURNED,
    EV_FLASH_MINTED,
    EV_METADATA_UPDATED,
    EV_OWNERSHIP_TRANSFERRED,
    EV_TRANSFER,
    ZERO_ADDRESS,
)
from flashledger.ledger.tranches import (
    Tranche,
    append_tranche,
    consume_active,
    dump_tranches,
    load_tranches,
    remove_expired,
)
from flashledger.runtime.errors import FORBIDDEN, INSUFFICIENT_BALANCE, INVALID_PAYLOAD, ApplyError
from flashledger.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


@dataclass
class TokenApplyError(ApplyError):
    """Token domain errors are ApplyError so the executor emits consistent receipts."""

    code: str
    reason: str
    details: Optional[Json] = None


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _as_amount(v: Any) -> Optional[int]:
    """Parse an integer base-unit amount. Floats and bools are never amounts."""
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return int(v)
    if isinstance(v, str):
        s = v.strip()
        # str.isdigit alone admits other scripts' digits and superscripts
        if s.isascii() and s.isdigit():
            return int(s)
    return None


def _now(state: Json) -> int:
    v = state.get("time")
    if isinstance(v, bool) or not isinstance(v, int):
        raise TokenApplyError("invalid_tx", "missing_time", {"time": v})
    return int(v)


def _emit(events: List[Json], name: str, **fields: Any) -> None:
    ev: Json = {"event": name}
    ev.update(fields)
    events.append(ev)


def _signer(env: TxEnvelope) -> str:
    s = normalize_address(env.signer)
    if not s:
        raise TokenApplyError("invalid_tx", "bad_signer", {"signer": env.signer})
    return s


def _address_arg(payload: Json, key: str, *, allow_zero: bool = False) -> str:
    raw = payload.get(key)
    addr = normalize_address(raw)
    if not addr:
        raise TokenApplyError(INVALID_PAYLOAD, "bad_address", {"field": key, "value": raw})
    if is_zero_address(addr) and not allow_zero:
        raise TokenApplyError(INVALID_PAYLOAD, f"zero_{key}", {"field": key})
    return addr


def _amount_arg(payload: Json, key: str = "amount") -> int:
    raw = payload.get(key)
    amt = _as_amount(raw)
    if amt is None or amt <= 0:
        raise TokenApplyError(INVALID_PAYLOAD, "bad_amount", {"field": key, "value": raw})
    return amt


def _require_owner(state: Json, signer: str, tx_type: str) -> None:
    owner = normalize_address(_as_dict(state.get("params")).get("owner"))
    if not owner or signer != owner:
        raise TokenApplyError(FORBIDDEN, "not_owner", {"tx_type": tx_type, "signer": signer, "owner": owner})


def _accounts(state: Json) -> Json:
    accts = state.get("accounts")
    if not isinstance(accts, dict):
        accts = {}
        state["accounts"] = accts
    return accts


def _token(state: Json) -> Json:
    tok = state.get("token")
    if not isinstance(tok, dict):
        tok = {}
        state["token"] = tok
    tok.setdefault("total_supply", 0)
    return tok


def _get_account(state: Json, addr: str, *, create: bool) -> Optional[Json]:
    accts = _accounts(state)
    acct = accts.get(addr)
    if isinstance(acct, dict):
        acct.setdefault("balance", 0)
        acct.setdefault("tranches", [])
        return acct
    if not create:
        return None
    acct = {"balance": 0, "tranches": []}
    accts[addr] = acct
    return acct


def _write_tranches(acct: Json, tranches: List[Tranche]) -> None:
    acct["tranches"] = dump_tranches(tranches)


def _adjust_supply(state: Json, delta: int) -> None:
    tok = _token(state)
    tok["total_supply"] = int(tok.get("total_supply", 0)) + int(delta)


# ---------------------------------------------------------------------------
# Core tranche bookkeeping
# ---------------------------------------------------------------------------


def sync_expiry(state: Json, account: str, events: List[Json]) -> int:
    """Burn every expired tranche held by `account`. Returns the amount burned."""
    acct = _get_account(state, account, create=False)
    if acct is None:
        return 0

    now = _now(state)
    remaining, burned = remove_expired(load_tranches(acct), now)
    if burned <= 0:
        return 0

    _write_tranches(acct, remaining)
    acct["balance"] = int(acct["balance"]) - burned
    _adjust_supply(state, -burned)

    _emit(events, EV_EXPIRED_BURNED, account=account, amount=burned, at=now)
    _emit(events, EV_TRANSFER, **{"from": account, "to": ZERO_ADDRESS, "value": burned})
    return burned


def _take_active(state: Json, frm: str, amount: int) -> List[Tranche]:
    """Remove `amount` of active value from `frm`, or raise without writing."""
    acct = _get_account(state, frm, create=False)
    tranches = load_tranches(acct)
    remaining, moved, shortfall = consume_active(tranches, amount, _now(state))
    if shortfall > 0 or acct is None:
        raise TokenApplyError(
            INSUFFICIENT_BALANCE,
            "insufficient_active_balance",
            {"account": frm, "requested": amount, "available": amount - shortfall},
        )

    _write_tranches(acct, remaining)
    acct["balance"] = int(acct["balance"]) - amount
    return moved


def _give(state: Json, to: str, moved: List[Tranche]) -> None:
    acct = _get_account(state, to, create=True)
    tranches = load_tranches(acct)
    total = 0
    for t in moved:
        tranches = append_tranche(tranches, t.amount, t.expires_at)
        total += int(t.amount)
    _write_tranches(acct, tranches)
    acct["balance"] = int(acct["balance"]) + total


def move_balance(state: Json, frm: str, to: str, amount: int, events: List[Json]) -> None:
    """Shared transfer path.

    Mint legs (frm is the zero address) never come through here; see
    _apply_flash_mint. A zero `to` is the pure-burn leg: value leaves `frm`
    and total supply, and no destination tranche is created.
    """
    sync_expiry(state, frm, events)
    burning = is_zero_address(to)
    if not burning and to != frm:
        sync_expiry(state, to, events)

    moved = _take_active(state, frm, amount)

    if burning:
        _adjust_supply(state, -amount)
    else:
        _give(state, to, moved)

    _emit(events, EV_TRANSFER, **{"from": frm, "to": to, "value": amount})


# ---------------------------------------------------------------------------
# Appliers
# ---------------------------------------------------------------------------


def _apply_flash_mint(state: Json, env: TxEnvelope) -> Json:
    signer = _signer(env)
    _require_owner(state, signer, env.tx_type)

    payload = _as_dict(env.payload)
    to = _address_arg(payload, "to")
    amount = _amount_arg(payload)

    now = _now(state)
    expires_at = _as_amount(payload.get("expires_at"))
    if expires_at is None or expires_at <= now:
        raise TokenApplyError(
            INVALID_PAYLOAD,
            "expiry_not_in_future",
            {"expires_at": payload.get("expires_at"), "now": now},
        )

    events: List[Json] = []
    sync_expiry(state, to, events)

    acct = _get_account(state, to, create=True)
    _write_tranches(acct, append_tranche(load_tranches(acct), amount, expires_at))
    acct["balance"] = int(acct["balance"]) + amount
    _adjust_supply(state, amount)

    _emit(events, EV_TRANSFER, **{"from": ZERO_ADDRESS, "to": to, "value": amount})
    _emit(events, EV_FLASH_MINTED, to=to, amount=amount, expires_at=expires_at)

    return {"applied": "FLASH_MINT", "to": to, "amount": amount, "expires_at": expires_at, "events": events}


def _apply_transfer(state: Json, env: TxEnvelope) -> Json:
    signer = _signer(env)
    payload = _as_dict(env.payload)
    to = _address_arg(payload, "to")
    amount = _amount_arg(payload)

    events: List[Json] = []
    move_balance(state, signer, to, amount, events)
    return {"applied": "TRANSFER", "from": signer, "to": to, "amount": amount, "events": events}


def _apply_burn(state: Json, env: TxEnvelope) -> Json:
    signer = _signer(env)
    amount = _amount_arg(_as_dict(env.payload))

    events: List[Json] = []
    move_balance(state, signer, ZERO_ADDRESS, amount, events)
    return {"applied": "BURN", "from": signer, "amount": amount, "events": events}


def _apply_approve(state: Json, env: TxEnvelope) -> Json:
    signer = _signer(env)
    payload = _as_dict(env.payload)
    spender = _address_arg(payload, "spender")

    raw = payload.get("amount")
    amount = _as_amount(raw)
    if amount is None or amount < 0:
        raise TokenApplyError(INVALID_PAYLOAD, "bad_amount", {"field": "amount", "value": raw})

    root = state.get("allowances")
    if not isinstance(root, dict):
        root = {}
        state["allowances"] = root
    row = root.get(signer)
    if not isinstance(row, dict):
        row = {}
        root[signer] = row

    if amount == 0:
        row.pop(spender, None)
        if not row:
            root.pop(signer, None)
    else:
        row[spender] = amount

    events: List[Json] = []
    _emit(events, EV_APPROVAL, owner=signer, spender=spender, value=amount)
    return {"applied": "APPROVE", "owner": signer, "spender": spender, "amount": amount, "events": events}


def _apply_transfer_from(state: Json, env: TxEnvelope) -> Json:
    spender = _signer(env)
    payload = _as_dict(env.payload)
    frm = _address_arg(payload, "from")
    to = _address_arg(payload, "to")
    amount = _amount_arg(payload)

    row = _as_dict(_as_dict(state.get("allowances")).get(frm))
    allowed = int(row.get(spender, 0) or 0)
    if allowed < amount:
        raise TokenApplyError(
            INSUFFICIENT_BALANCE,
            "insufficient_allowance",
            {"owner": frm, "spender": spender, "allowance": allowed, "requested": amount},
        )

    events: List[Json] = []
    move_balance(state, frm, to, amount, events)

    left = allowed - amount
    if left:
        row[spender] = left
    else:
        row.pop(spender, None)
        if not row:
            state["allowances"].pop(frm, None)

    return {"applied": "TRANSFER_FROM", "from": frm, "to": to, "spender": spender, "amount": amount, "events": events}


def _apply_burn_expired(state: Json, env: TxEnvelope) -> Json:
    _signer(env)
    account = _address_arg(_as_dict(env.payload), "account")

    events: List[Json] = []
    burned = sync_expiry(state, account, events)
    return {"applied": "BURN_EXPIRED", "account": account, "burned": burned, "events": events}


def _apply_sweep_expired(state: Json, env: TxEnvelope) -> Json:
    _signer(env)
    raw = _as_dict(env.payload).get("accounts")
    if not isinstance(raw, list):
        raise TokenApplyError(INVALID_PAYLOAD, "accounts_not_list", {"accounts": raw})

    accounts: List[str] = []
    for i, a in enumerate(raw):
        addr = normalize_address(a)
        if not addr or is_zero_address(addr):
            raise TokenApplyError(INVALID_PAYLOAD, "bad_address", {"field": f"accounts[{i}]", "value": a})
        accounts.append(addr)

    events: List[Json] = []
    burned: Dict[str, int] = {}
    for addr in accounts:
        n = sync_expiry(state, addr, events)
        if n:
            burned[addr] = burned.get(addr, 0) + n

    return {"applied": "SWEEP_EXPIRED", "burned": burned, "events": events}


def _apply_metadata_uri_set(state: Json, env: TxEnvelope) -> Json:
    signer = _signer(env)
    _require_owner(state, signer, env.tx_type)

    raw = _as_dict(env.payload).get("uri")
    if not isinstance(raw, str):
        raise TokenApplyError(INVALID_PAYLOAD, "bad_uri", {"uri": raw})
    uri = raw.strip()

    _token(state)["metadata_uri"] = uri

    events: List[Json] = []
    _emit(events, EV_METADATA_UPDATED, uri=uri)
    return {"applied": "METADATA_URI_SET", "uri": uri, "events": events}


def _apply_ownership_transfer(state: Json, env: TxEnvelope) -> Json:
    signer = _signer(env)
    _require_owner(state, signer, env.tx_type)
    new_owner = _address_arg(_as_dict(env.payload), "new_owner")

    params = state.get("params")
    if not isinstance(params, dict):
        params = {}
        state["params"] = params
    params["owner"] = new_owner

    events: List[Json] = []
    _emit(events, EV_OWNERSHIP_TRANSFERRED, previous_owner=signer, new_owner=new_owner)
    return {"applied": "OWNERSHIP_TRANSFER", "owner": new_owner, "events": events}


_APPLIERS = {
    "FLASH_MINT": _apply_flash_mint,
    "TRANSFER": _apply_transfer,
    "BURN": _apply_burn,
    "APPROVE": _apply_approve,
    "TRANSFER_FROM": _apply_transfer_from,
    "BURN_EXPIRED": _apply_burn_expired,
    "SWEEP_EXPIRED": _apply_sweep_expired,
    "METADATA_URI_SET": _apply_metadata_uri_set,
    "OWNERSHIP_TRANSFER": _apply_ownership_transfer,
}


def apply_token(state: Json, env: TxEnvelope) -> Optional[Json]:
    """Apply a token tx. Returns None when the tx type is not a token tx."""
    fn = _APPLIERS.get(str(env.tx_type or "").strip().upper())
    if fn is None:
        return None
    return fn(state, env)


__all__ = ["TokenApplyError", "apply_token", "move_balance", "sync_expiry"]
