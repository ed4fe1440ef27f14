# src/flashledger/crypto/sig.py
from __future__ import annotations

import json
from typing import Any, Dict

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature, ValidationError
from web3 import Web3

from flashledger.ledger.address import normalize_address

Json = Dict[str, Any]


def canonical_tx_message(*, chain_id: str, tx_type: str, signer: str, nonce: int, payload: Json) -> bytes:
    """Bytes a signer commits to: sorted-key compact JSON of the envelope.

    chain_id pins the signature to one ledger and nonce to one position in
    the signer's sequence, so a signed envelope cannot be replayed elsewhere.
    """
    obj: Json = {
        "chain_id": str(chain_id),
        "tx_type": str(tx_type).strip().upper(),
        "signer": normalize_address(signer) or str(signer),
        "nonce": int(nonce),
        "payload": payload if isinstance(payload, dict) else {},
    }
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def recover_signer(*, message: bytes, sig: str) -> str:
    """EIP-191 personal_sign recovery. Returns "" for a malformed signature."""
    if not isinstance(sig, str) or not sig.strip():
        return ""
    try:
        raw = Web3.to_bytes(hexstr=sig.strip())
    except ValueError:
        return ""
    # r || s || v, with v as 27/28 or 0/1
    if len(raw) != 65 or raw[64] not in (0, 1, 27, 28):
        return ""
    try:
        return Account.recover_message(encode_defunct(primitive=message), signature=raw)
    except (BadSignature, ValidationError, ValueError, TypeError):
        return ""


def sign_tx_envelope_dict(*, tx: Json, chain_id: str, private_key: str) -> Json:
    """Return a copy of `tx` with its 'sig' field populated.

    Expected shape: {"tx_type", "signer", "nonce", "payload"}; extra keys are
    carried through unsigned.
    """
    payload = tx.get("payload") if isinstance(tx.get("payload"), dict) else {}
    nonce = int(tx.get("nonce") or 0)
    msg = canonical_tx_message(
        chain_id=chain_id,
        tx_type=str(tx.get("tx_type") or ""),
        signer=str(tx.get("signer") or ""),
        nonce=nonce,
        payload=payload,
    )
    signed = Account.sign_message(encode_defunct(primitive=msg), private_key=private_key)

    out = dict(tx)
    out["nonce"] = nonce
    out["payload"] = payload
    out["sig"] = Web3.to_hex(signed.signature)
    return out


__all__ = ["canonical_tx_message", "recover_signer", "sign_tx_envelope_dict"]
