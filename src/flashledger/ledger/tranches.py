# src/flashledger/ledger/tranches.py
from __future__ import annotations

"""Tranche arithmetic for a single account.

An account's flash balance is stored as an arena of tranches:

  accounts[addr]["tranches"] = [{"amount": int, "expires_at": int}, ...]

Rules:
  - a tranche is active iff now < expires_at (unix seconds)
  - amounts are always > 0; a tranche consumed to zero is removed
  - removal is swap-with-last then truncate, so storage order is not
    insertion order once anything has been removed
  - appending merges into the LAST tranche when its expiry matches exactly

Everything here is pure: functions take a list of Tranche and return new
lists. Callers decide when (and whether) to write the result back to state.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Tuple

Json = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class Tranche:
    amount: int
    expires_at: int

    def is_active(self, now: int) -> bool:
        return int(now) < int(self.expires_at)

    @staticmethod
    def from_json(j: Any) -> "Tranche":
        if isinstance(j, Tranche):
            return j
        if not isinstance(j, dict):
            raise TypeError(f"tranche must be dict, got {type(j)}")
        return Tranche(amount=int(j.get("amount", 0)), expires_at=int(j.get("expires_at", 0)))

    def to_json(self) -> Json:
        return {"amount": int(self.amount), "expires_at": int(self.expires_at)}


def load_tranches(acct: Any) -> List[Tranche]:
    if not isinstance(acct, dict):
        return []
    raw = acct.get("tranches")
    if not isinstance(raw, list):
        return []
    return [Tranche.from_json(t) for t in raw]


def dump_tranches(tranches: Iterable[Tranche]) -> List[Json]:
    return [t.to_json() for t in tranches]


def active_amount(tranches: Iterable[Tranche], now: int) -> int:
    return sum(int(t.amount) for t in tranches if t.is_active(now))


def expired_amount(tranches: Iterable[Tranche], now: int) -> int:
    return sum(int(t.amount) for t in tranches if not t.is_active(now))


def _swap_remove(tranches: List[Tranche], i: int) -> None:
    tranches[i] = tranches[-1]
    tranches.pop()


def remove_expired(tranches: List[Tranche], now: int) -> Tuple[List[Tranche], int]:
    """Drop every expired tranche. Returns (remaining, burned_amount)."""
    out = list(tranches)
    burned = 0
    i = 0
    while i < len(out):
        if out[i].is_active(now):
            i += 1
            continue
        burned += int(out[i].amount)
        # The element swapped into slot i has not been inspected yet.
        _swap_remove(out, i)
    return out, burned


def append_tranche(tranches: List[Tranche], amount: int, expires_at: int) -> List[Tranche]:
    amt = int(amount)
    if amt <= 0:
        raise ValueError("tranche amount must be > 0")
    out = list(tranches)
    if out and int(out[-1].expires_at) == int(expires_at):
        out[-1] = Tranche(amount=int(out[-1].amount) + amt, expires_at=int(expires_at))
    else:
        out.append(Tranche(amount=amt, expires_at=int(expires_at)))
    return out


def consume_active(
    tranches: List[Tranche], amount: int, now: int
) -> Tuple[List[Tranche], List[Tranche], int]:
    """Take `amount` of active value, walking tranches in storage order.

    Returns (remaining, moved, shortfall). `moved` lists the slices taken,
    each carrying the expiry of the tranche it came from. When shortfall > 0
    the caller must discard both lists: the source is only meant to be
    rewritten when the full amount was found.
    """
    need = int(amount)
    work = list(tranches)
    moved: List[Tranche] = []

    for i, t in enumerate(work):
        if need <= 0:
            break
        if not t.is_active(now):
            continue
        take = min(int(t.amount), need)
        moved.append(Tranche(amount=take, expires_at=int(t.expires_at)))
        work[i] = Tranche(amount=int(t.amount) - take, expires_at=int(t.expires_at))
        need -= take

    if need > 0:
        return list(tranches), [], need

    # Compact drained slots after the walk so consumption order stays storage order.
    i = 0
    while i < len(work):
        if int(work[i].amount) > 0:
            i += 1
            continue
        _swap_remove(work, i)
    return work, moved, 0


__all__ = [
    "Tranche",
    "active_amount",
    "append_tranche",
    "consume_active",
    "dump_tranches",
    "expired_amount",
    "load_tranches",
    "remove_expired",
]
