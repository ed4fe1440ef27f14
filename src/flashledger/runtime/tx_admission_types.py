from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

Json = Dict[str, Any]


@dataclass(frozen=True)
class TxReject:
    code: str
    reason: str
    details: Optional[Json] = None


@dataclass(frozen=True)
class TxVerdict:
    """Admission outcome: admitted when `rejection` is None.

    Unpacks as `ok, rejection` so call sites can branch in one line.
    """

    rejection: Optional[TxReject] = None

    @property
    def ok(self) -> bool:
        return self.rejection is None

    @property
    def code(self) -> str:
        return "ok" if self.rejection is None else self.rejection.code

    @property
    def reason(self) -> str:
        return "admitted" if self.rejection is None else self.rejection.reason

    @property
    def details(self) -> Optional[Json]:
        return None if self.rejection is None else self.rejection.details

    def __iter__(self) -> Iterator[Any]:
        return iter((self.ok, self.rejection))

    @classmethod
    def admit(cls) -> "TxVerdict":
        return cls()

    @classmethod
    def reject(cls, code: str, reason: str, details: Optional[Json] = None) -> "TxVerdict":
        return cls(TxReject(code, reason, details))


def _as_nonce(v: Any) -> int:
    """Non-negative int nonce; anything else becomes -1, which never matches."""
    if v is None:
        return 0
    if isinstance(v, bool):
        return -1
    if isinstance(v, int):
        return v if v >= 0 else -1
    if isinstance(v, str) and v.strip().isascii() and v.strip().isdigit():
        return int(v.strip())
    return -1


@dataclass(frozen=True)
class TxEnvelope:
    """One ledger call: which entry point, who is calling, and its arguments.

    tx_type is upper-cased on parse; signer is kept as given (apply
    normalizes it to checksum form). `nonce` and `sig` authenticate the
    caller; see flashledger.crypto.sig for what is signed.
    """

    tx_type: str
    signer: str
    payload: Json = field(default_factory=dict)
    nonce: int = 0
    sig: str = ""

    @classmethod
    def from_json(cls, j: Any) -> "TxEnvelope":
        if isinstance(j, TxEnvelope):
            return j
        if not isinstance(j, dict):
            raise TypeError(f"tx envelope must be a dict, got {type(j).__name__}")
        payload = j.get("payload")
        return cls(
            tx_type=str(j.get("tx_type") or "").strip().upper(),
            signer=str(j.get("signer") or "").strip(),
            payload=dict(payload) if isinstance(payload, dict) else {},
            nonce=_as_nonce(j.get("nonce")),
            sig=str(j.get("sig") or "").strip(),
        )

    def to_json(self) -> Json:
        return {
            "tx_type": self.tx_type,
            "signer": self.signer,
            "payload": dict(self.payload),
            "nonce": self.nonce,
            "sig": self.sig,
        }
