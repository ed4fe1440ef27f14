# src/flashledger/runtime/state_invariants.py
from __future__ import annotations

"""State invariants / normalization helpers.

Ledger state is a nested JSON-like dict mutated deterministically by apply_*
modules. This module is the single place that:

  - validates the state is dict-like
  - ensures core top-level containers exist (so domain modules can rely on them)
  - checks the bookkeeping invariants the token must hold after every operation

Bookkeeping invariants:
  - for every account: sum(tranche.amount) == balance
  - no tranche has amount <= 0
  - token.total_supply == sum(account balances)
  - every recorded nonce is a positive int
"""

from collections.abc import MutableMapping
from typing import Any, Dict, List

from flashledger.ledger.constants import DEFAULT_TOKEN_NAME, DEFAULT_TOKEN_SYMBOL, TOKEN_DECIMALS
from flashledger.ledger.tranches import load_tranches
from flashledger.runtime.errors import StateInvariantError

Json = Dict[str, Any]


def _ensure_dict(st: MutableMapping, key: str) -> None:
    v = st.get(key)
    if v is None:
        st[key] = {}
    elif not isinstance(v, dict):
        # Fail closed: do not attempt to coerce arbitrary types.
        raise TypeError(f"state[{key!r}] must be dict, got {type(v)}")


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict and contains core keys.

    Returns the (possibly mutated) dict.

    Raises:
        TypeError: if st is not a MutableMapping
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    _ensure_dict(st, "accounts")
    _ensure_dict(st, "allowances")
    _ensure_dict(st, "params")
    _ensure_dict(st, "nonces")
    _ensure_dict(st, "token")

    token = st["token"]
    token.setdefault("name", DEFAULT_TOKEN_NAME)
    token.setdefault("symbol", DEFAULT_TOKEN_SYMBOL)
    token.setdefault("decimals", TOKEN_DECIMALS)
    token.setdefault("total_supply", 0)
    token.setdefault("metadata_uri", "")

    return st  # type: ignore[return-value]


def ledger_violations(st: Json) -> List[str]:
    """Return human-readable bookkeeping violations (empty when consistent)."""
    out: List[str] = []
    accounts = st.get("accounts") if isinstance(st.get("accounts"), dict) else {}

    total = 0
    for addr in sorted(accounts.keys()):
        acct = accounts[addr]
        tranches = load_tranches(acct)
        bal = int(acct.get("balance", 0)) if isinstance(acct, dict) else 0
        total += bal

        tsum = 0
        for t in tranches:
            if int(t.amount) <= 0:
                out.append(f"{addr}: non-positive tranche amount {t.amount}")
            tsum += int(t.amount)
        if tsum != bal:
            out.append(f"{addr}: tranche sum {tsum} != balance {bal}")

    nonces = st.get("nonces") if isinstance(st.get("nonces"), dict) else {}
    for addr in sorted(nonces.keys()):
        n = nonces[addr]
        if isinstance(n, bool) or not isinstance(n, int) or n < 1:
            out.append(f"{addr}: bad nonce {n!r}")

    token = st.get("token") if isinstance(st.get("token"), dict) else {}
    supply = int(token.get("total_supply", 0) or 0)
    if supply != total:
        out.append(f"total_supply {supply} != sum of balances {total}")
    return out


def check_ledger_invariants(st: Json) -> None:
    problems = ledger_violations(st)
    if problems:
        raise StateInvariantError("; ".join(problems))


__all__ = ["check_ledger_invariants", "ensure_state", "ledger_violations"]
