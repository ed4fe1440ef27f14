# src/flashledger/runtime/sigverify.py

from __future__ import annotations

from flashledger.crypto.sig import canonical_tx_message, recover_signer
from flashledger.ledger.address import normalize_address
from flashledger.runtime.tx_admission_types import TxEnvelope


def verify_tx_signature(*, chain_id: str, env: TxEnvelope) -> bool:
    """True when `env.sig` was produced by the key behind `env.signer`.

    Pure: no I/O, no state. A missing or malformed signature is False.
    """
    signer = normalize_address(env.signer)
    if not signer or not env.sig:
        return False
    msg = canonical_tx_message(
        chain_id=chain_id,
        tx_type=env.tx_type,
        signer=signer,
        nonce=env.nonce,
        payload=env.payload,
    )
    return recover_signer(message=msg, sig=env.sig) == signer
