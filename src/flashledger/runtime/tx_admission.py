from __future__ import annotations

from typing import Any, Dict, Optional

from flashledger.ledger.address import is_address, normalize_address
from flashledger.ledger.state import TokenView
from flashledger.runtime.sigverify import verify_tx_signature
from flashledger.runtime.supported_txs import (
    EMPTY_STRING_OK,
    OWNER_ONLY_TX_TYPES,
    REQUIRED_PAYLOAD_KEYS,
)
from flashledger.runtime.tx_admission_types import TxEnvelope, TxVerdict

Json = Dict[str, Any]


def _require(payload: Dict[str, Any], key: str) -> Optional[TxVerdict]:
    v = payload.get(key)
    if v is None or (isinstance(v, str) and not v.strip() and key not in EMPTY_STRING_OK):
        return TxVerdict.reject("invalid_payload", f"missing_{key}", {"missing": key})
    return None


def _authenticate(env: TxEnvelope, ledger: TokenView, chain_id: str, require_signatures: bool) -> Optional[TxVerdict]:
    """Signature and nonce gate.

    With signatures required, every envelope must carry the signer's next
    nonce and a signature over it. When unsigned calls are allowed (dev only),
    a nonce or signature that is supplied is still checked.
    """
    signer = normalize_address(env.signer)
    if require_signatures and not env.sig:
        return TxVerdict.reject("forbidden", "missing_signature", {"signer": signer})

    if require_signatures or env.nonce != 0 or env.sig:
        expected = ledger.nonce_of(signer) + 1
        if env.nonce != expected:
            return TxVerdict.reject("bad_nonce", "nonce_must_be_next", {"expected": expected, "got": env.nonce})

    if env.sig and not verify_tx_signature(chain_id=chain_id, env=env):
        return TxVerdict.reject("forbidden", "bad_signature", {"signer": signer, "tx_type": env.tx_type})
    return None


def admit_tx(
    *,
    tx: Any,
    ledger: TokenView,
    chain_id: str = "",
    require_signatures: bool = True,
) -> TxVerdict:
    """Cheap shape/authority gate run before a tx is applied.

    Admission never mutates state and never decides balance questions; those
    belong to apply_tx(), which runs against the live snapshot. Passing
    admission means the envelope is well-formed for its tx type and was
    signed by the key behind `signer`.
    """
    if isinstance(tx, TxEnvelope):
        raw: Json = tx.to_json()
    elif isinstance(tx, dict):
        raw = tx
    else:
        return TxVerdict.reject("invalid_tx", "bad_env:not_object", {"type": type(tx).__name__})

    if not isinstance(raw.get("payload", {}), dict):
        return TxVerdict.reject("invalid_tx", "payload_not_object", {})

    env = TxEnvelope.from_json(raw)
    t = env.tx_type
    if not t:
        return TxVerdict.reject("invalid_tx", "missing_tx_type", {})

    required = REQUIRED_PAYLOAD_KEYS.get(t)
    if required is None:
        return TxVerdict.reject("tx_unimplemented", "tx_type_not_implemented", {"tx_type": t})

    if not is_address(env.signer):
        return TxVerdict.reject("invalid_tx", "bad_signer", {"signer": env.signer})

    for key in required:
        rej = _require(env.payload, key)
        if rej is not None:
            return rej

    rej = _authenticate(env, ledger, chain_id, require_signatures)
    if rej is not None:
        return rej

    if t in OWNER_ONLY_TX_TYPES:
        owner = normalize_address(ledger.owner)
        if not owner or normalize_address(env.signer) != owner:
            return TxVerdict.reject(
                "forbidden",
                "not_owner",
                {"tx_type": t, "signer": env.signer, "owner": ledger.owner},
            )

    return TxVerdict.admit()


__all__ = ["admit_tx"]
