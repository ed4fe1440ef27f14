# src/flashledger/client/mint_call.py
from __future__ import annotations

"""Call-building helpers for operator tools talking to a deployed flash token.

Deployed contracts expose one of two mintFlash signatures:

  mintFlash(address to, uint256 amount)                    # expiry not enforced
  mintFlash(address to, uint256 amount, uint256 expiresAt) # expiry enforced on-chain

The ABI is inspected at call time and the argument list is built to match.
With the 2-argument form any expiry an operator picks is advisory only.
"""

import math
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext
from typing import Any, Dict, List, Optional, Sequence

from web3 import Web3

from flashledger.ledger.address import normalize_address
from flashledger.ledger.constants import MIN_FLASH_EXPIRATION_SECONDS

Json = Dict[str, Any]

MINT_FUNCTION = "mintFlash"


@dataclass(frozen=True)
class MintCall:
    args: List[Any]
    enforces_expiry: bool
    expires_at: Optional[int]


def find_function(abi: Sequence[Json], name: str) -> Optional[Json]:
    for entry in abi or []:
        if isinstance(entry, dict) and entry.get("type", "function") == "function" and entry.get("name") == name:
            return entry
    return None


def parse_units(value: Any, decimals: int) -> int:
    """Decimal token amount -> integer base units. Rejects excess precision."""
    try:
        d = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"invalid amount: {value!r}") from e
    if not d.is_finite():
        raise ValueError(f"invalid amount: {value!r}")
    with localcontext() as ctx:
        ctx.prec = 96
        scaled = d.scaleb(int(decimals))
    if scaled != scaled.to_integral_value():
        raise ValueError(f"amount {value!r} has more than {decimals} decimals")
    return int(scaled)


def format_units(raw: int, decimals: int) -> str:
    with localcontext() as ctx:
        ctx.prec = 96
        d = Decimal(int(raw)).scaleb(-int(decimals))
    s = format(d, "f")
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return s or "0"


def build_mint_call_args(
    abi: Sequence[Json],
    to: str,
    amount: int,
    expiration_seconds: float,
    *,
    now: Optional[float] = None,
) -> MintCall:
    """Build mintFlash arguments for whichever signature `abi` declares."""
    fn = find_function(abi, MINT_FUNCTION)
    if fn is None:
        raise ValueError("mintFlash function not found in ABI.")

    dest = normalize_address(to)
    if not dest:
        raise ValueError("Invalid destination wallet address.")
    if int(amount) <= 0:
        raise ValueError("Amount must be greater than zero.")

    inputs = fn.get("inputs") or []
    if len(inputs) == 3:
        exp = float(expiration_seconds)
        if not math.isfinite(exp) or exp < MIN_FLASH_EXPIRATION_SECONDS:
            raise ValueError("Expiration must be at least 1 minute.")
        t = time.time() if now is None else float(now)
        expires_at = int(math.floor(t + exp))
        return MintCall(args=[dest, int(amount), expires_at], enforces_expiry=True, expires_at=expires_at)

    if len(inputs) == 2:
        return MintCall(args=[dest, int(amount)], enforces_expiry=False, expires_at=None)

    raise ValueError("Unsupported mintFlash signature. Expected 2 or 3 inputs.")


_OWNABLE_UNAUTHORIZED = Web3.to_hex(Web3.keccak(text="OwnableUnauthorizedAccount(address)"))[:10].lower()


def _revert_data(err: Any) -> str:
    v = getattr(err, "data", None)
    if isinstance(v, str):
        return v
    if isinstance(v, dict) and isinstance(v.get("data"), str):
        return v["data"]
    args = getattr(err, "args", ())
    for a in args:
        if isinstance(a, dict) and isinstance(a.get("data"), str):
            return a["data"]
    return ""


def normalize_error(err: Any) -> str:
    """Turn a contract call failure into a message an operator can act on."""
    if err is None:
        return "Unknown error"
    if isinstance(err, str):
        return err

    msg = str(getattr(err, "message", "") or err) or "Unknown error"

    data = _revert_data(err)
    if data.startswith("0x") and len(data) >= 10:
        selector = data[:10].lower()
        # selector plus one abi word holding the sender
        if selector == _OWNABLE_UNAUTHORIZED and len(data) >= 74:
            addr = f"0x{data[-40:]}"
            return f"Only contract owner can mint. Sender {addr} is not authorized."

    if "cannot slice beyond data bounds" in msg:
        return "Contract call failed: check contract address and ABI (function may not exist on target contract)."
    if "execution reverted (no data present" in msg:
        return (
            "Contract reverted without reason. Common causes: wrong ABI/signature, "
            "sender is not contract owner, or contract rules rejected this mint."
        )
    return msg


__all__ = ["MintCall", "build_mint_call_args", "find_function", "format_units", "normalize_error", "parse_units"]
