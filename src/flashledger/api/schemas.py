from __future__ import annotations

"""Pydantic request schemas for the public API.

These exist only for HTTP input validation; ledger-level validation of
payload values happens in the apply layer and surfaces as a rejected receipt.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class TxSubmitRequest(BaseModel):
    tx_type: str = Field(..., min_length=1, description="Ledger entry point, e.g. FLASH_MINT")
    signer: str = Field(..., min_length=1, description="Caller address (0x...)")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Entry point arguments")
    nonce: int = Field(default=0, ge=0, description="Signer's next nonce (last applied + 1)")
    sig: str = Field(default="", description="EIP-191 signature over the canonical envelope, 0x hex")

    # Ledger time override (unix seconds). Ignored outside dev/testnet.
    now: Optional[int] = Field(default=None, ge=0)

    model_config = {"extra": "forbid"}

    def envelope(self) -> Dict[str, Any]:
        return {
            "tx_type": self.tx_type,
            "signer": self.signer,
            "payload": self.payload,
            "nonce": self.nonce,
            "sig": self.sig,
        }
