# src/flashledger/runtime/supported_txs.py
"""Tx types this build applies, and the payload keys each one requires.

Admission uses REQUIRED_PAYLOAD_KEYS for a cheap shape check before a tx ever
reaches apply_tx(); the apply router still re-validates every value, and
rejects anything outside SUPPORTED_TX_TYPES with tx_unimplemented.
"""

from __future__ import annotations

from typing import AbstractSet, Dict, Tuple

REQUIRED_PAYLOAD_KEYS: Dict[str, Tuple[str, ...]] = {
    # Minting authority
    "FLASH_MINT": ("to", "amount", "expires_at"),
    "METADATA_URI_SET": ("uri",),
    "OWNERSHIP_TRANSFER": ("new_owner",),
    # Holders
    "TRANSFER": ("to", "amount"),
    "BURN": ("amount",),
    "APPROVE": ("spender", "amount"),
    "TRANSFER_FROM": ("from", "to", "amount"),
    # Permissionless hygiene
    "BURN_EXPIRED": ("account",),
    "SWEEP_EXPIRED": ("accounts",),
}

SUPPORTED_TX_TYPES: AbstractSet[str] = frozenset(REQUIRED_PAYLOAD_KEYS.keys())

# Payload keys where "" is a real value (clearing the metadata URI).
EMPTY_STRING_OK: AbstractSet[str] = frozenset({"uri"})

# Tx types only the minting authority may submit.
OWNER_ONLY_TX_TYPES: AbstractSet[str] = frozenset({"FLASH_MINT", "METADATA_URI_SET", "OWNERSHIP_TRANSFER"})


__all__ = ["EMPTY_STRING_OK", "OWNER_ONLY_TX_TYPES", "REQUIRED_PAYLOAD_KEYS", "SUPPORTED_TX_TYPES"]
