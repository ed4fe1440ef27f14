# src/flashledger/ledger/constants.py
from __future__ import annotations

"""Token constants.

The ledger mirrors a BEP20 token: integer base units, 18 decimals by default,
and the zero address standing in for "no account" on mint/burn legs.
"""

# Monetary precision (1 token = 1e18 base units)
TOKEN_DECIMALS: int = 18

DEFAULT_TOKEN_NAME: str = "Flash USDT"
DEFAULT_TOKEN_SYMBOL: str = "USDT"

# Null account for mint (from) and burn (to) legs.
ZERO_ADDRESS: str = "0x0000000000000000000000000000000000000000"

# Operator tooling refuses flash mints shorter than this.
MIN_FLASH_EXPIRATION_SECONDS: int = 60

# Event names emitted by the ledger.
EV_TRANSFER = "Transfer"
EV_APPROVAL = "Approval"
EV_FLASH_MINTED = "FlashMinted"
EV_EXPIRED_BURNED = "ExpiredBalanceBurned"
EV_METADATA_UPDATED = "MetadataURIUpdated"
EV_OWNERSHIP_TRANSFERRED = "OwnershipTransferred"
