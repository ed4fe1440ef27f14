# src/flashledger/runtime/domain_dispatch.py

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, Optional

from flashledger.runtime.apply.token import apply_token
from flashledger.runtime.errors import ApplyError
from flashledger.runtime.state_invariants import ensure_state
from flashledger.runtime.supported_txs import SUPPORTED_TX_TYPES
from flashledger.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]
ApplyFn = Callable[[Json, TxEnvelope], Optional[Json]]

# Each domain returns None for tx types it does not own.
_DOMAINS: Dict[str, ApplyFn] = {"token": apply_token}


def _as_apply_error(e: Exception, tx_type: str, domain: str) -> ApplyError:
    """Map an unexpected exception from a domain onto a receipt-shaped error.

    Exceptions that already carry code/reason keep them; anything else becomes
    `domain_error` with the exception class as the reason.
    """
    code = getattr(e, "code", None)
    reason = getattr(e, "reason", None)
    if code is None and reason is None:
        return ApplyError("domain_error", type(e).__name__, {"tx_type": tx_type, "domain": domain, "error": str(e)})
    details = getattr(e, "details", None)
    return ApplyError(
        str(code or "domain_error"),
        str(reason or type(e).__name__),
        details if details is not None else {"tx_type": tx_type, "domain": domain},
    )


def apply_tx(state: Json, env: Any) -> Json:
    """Apply one ledger call atomically.

    The call runs against a deep copy of `state`; the copy replaces the
    contents of `state` only when a domain returns normally. On ApplyError
    `state` is untouched.
    """
    ensure_state(state)

    tx = env if isinstance(env, TxEnvelope) else TxEnvelope.from_json(env)
    if not tx.tx_type:
        raise ApplyError("invalid_tx", "missing_tx_type", {"tx_type": ""})
    if tx.tx_type not in SUPPORTED_TX_TYPES:
        raise ApplyError("tx_unimplemented", "tx_type_not_implemented", {"tx_type": tx.tx_type})

    scratch: Json = copy.deepcopy(dict(state))
    for domain, fn in _DOMAINS.items():
        try:
            out = fn(scratch, tx)
        except ApplyError:
            raise
        except Exception as e:
            raise _as_apply_error(e, tx.tx_type, domain) from e
        if out is not None:
            state.clear()
            state.update(scratch)
            return out

    raise ApplyError("tx_unimplemented", "tx_type_not_implemented", {"tx_type": tx.tx_type})


__all__ = ["ApplyError", "apply_tx"]
