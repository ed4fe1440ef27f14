from __future__ import annotations

from typing import Any, Dict, List, Optional

from flashledger.crypto.sig import sign_tx_envelope_dict
from flashledger.runtime.executor import FlashLedgerExecutor

Json = Dict[str, Any]


def sweep_all(
    ex: FlashLedgerExecutor,
    *,
    signer: str,
    private_key: Optional[str] = None,
    now: Optional[int] = None,
    batch_size: int = 100,
) -> List[Json]:
    """Burn expired tranches for every account holding any, in batches.

    Accounts are found against the same ledger time the sweep will apply at,
    so a batch never names an account that has nothing to burn. With
    `private_key` each batch is signed with the signer's next nonce. Returns
    the receipts, one per SWEEP_EXPIRED submitted (empty when nothing expired).
    """
    t = ex.now() if now is None else int(now)
    accounts = ex.view().accounts_with_expired(t)
    size = max(1, int(batch_size))

    receipts: List[Json] = []
    for i in range(0, len(accounts), size):
        env: Json = {"tx_type": "SWEEP_EXPIRED", "signer": signer, "payload": {"accounts": accounts[i : i + size]}}
        if private_key:
            env["nonce"] = ex.view().nonce_of(signer) + 1
            env = sign_tx_envelope_dict(tx=env, chain_id=ex.chain_id, private_key=private_key)
        receipts.append(ex.submit_tx(env, now=t))
    return receipts
