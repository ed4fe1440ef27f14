# src/flashledger/ledger/address.py
from __future__ import annotations

from typing import Any

from web3 import Web3

from flashledger.ledger.constants import ZERO_ADDRESS


def is_address(v: Any) -> bool:
    return isinstance(v, str) and Web3.is_address(v.strip())


def normalize_address(v: Any) -> str:
    """Return the checksum form of an EVM address, or "" if `v` is not one."""
    if not is_address(v):
        return ""
    return Web3.to_checksum_address(str(v).strip())


def is_zero_address(addr: str) -> bool:
    return str(addr or "").strip().lower() == ZERO_ADDRESS
