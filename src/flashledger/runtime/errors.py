from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

# Failure classes surfaced by apply_tx. None of them are retryable as-is.
INVALID_PAYLOAD = "invalid_payload"
FORBIDDEN = "forbidden"
INSUFFICIENT_BALANCE = "insufficient_balance"


@dataclass
class ApplyError(Exception):
    """Canonical error type for domain apply and dispatch failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class StateInvariantError(RuntimeError):
    """Raised when persisted or post-apply state breaks ledger bookkeeping."""


class StaleSnapshotError(RuntimeError):
    """Another writer committed to the same database since this snapshot was read."""

    def __init__(self, expected_seq: int, stored_seq: Optional[int]) -> None:
        super().__init__(f"stale snapshot: expected stored seq {expected_seq}, found {stored_seq}")
        self.expected_seq = expected_seq
        self.stored_seq = stored_seq
