from __future__ import annotations

import copy
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from flashledger.ledger.address import normalize_address
from flashledger.ledger.constants import DEFAULT_TOKEN_NAME, DEFAULT_TOKEN_SYMBOL, EV_EXPIRED_BURNED, TOKEN_DECIMALS
from flashledger.ledger.state import TokenView
from flashledger.runtime.domain_dispatch import ApplyError, apply_tx
from flashledger.runtime.errors import StaleSnapshotError, StateInvariantError
from flashledger.runtime.ledger_logging import log_event
from flashledger.runtime.metrics import inc_counter, set_gauge
from flashledger.runtime.sqlite_db import SqliteDB, SqliteLedgerStore
from flashledger.runtime.state_invariants import check_ledger_invariants, ensure_state
from flashledger.runtime.tx_admission import admit_tx
from flashledger.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]

_log = logging.getLogger("flashledger.executor")


def _wall_clock_s() -> int:
    return int(time.time())


def _safe_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


class ExecutorError(RuntimeError):
    pass


class FlashLedgerExecutor:
    """Serial executor for the flash token ledger, persisted in SQLite.

    Every submit_tx() call is one atomic ledger operation:
      - ledger time is fixed once per call (never resampled mid-apply) and
        never moves backwards
      - the tx either applies fully or leaves state untouched
      - state, receipt and events land in a single SQLite transaction

    Calls are serialized with a lock. Other processes may write to the same
    database (the sweep script does); the in-memory snapshot is re-read
    whenever the stored seq has moved, and a commit computed from a stale
    snapshot is retried on the fresh one.
    """

    COMMIT_ATTEMPTS = 3

    def __init__(
        self,
        *,
        db_path: str,
        chain_id: str,
        owner: str,
        token_name: str = DEFAULT_TOKEN_NAME,
        token_symbol: str = DEFAULT_TOKEN_SYMBOL,
        token_decimals: int = TOKEN_DECIMALS,
        require_signatures: bool = True,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.chain_id = str(chain_id)
        self.db_path = str(db_path)
        self.require_signatures = bool(require_signatures)
        self._clock = clock or _wall_clock_s
        self._lock = threading.Lock()

        owner_addr = normalize_address(owner)
        if not owner_addr:
            raise ExecutorError(f"owner is not a valid address: {owner!r}")

        self._db = SqliteDB(path=self.db_path)
        self._store = SqliteLedgerStore(db=self._db)

        if self._store.exists():
            self.state = self._load()
        else:
            self.state = self._initial_state(
                owner=owner_addr,
                token_name=token_name,
                token_symbol=token_symbol,
                token_decimals=int(token_decimals),
            )
            self._store.write(self.state)

        set_gauge("total_supply", TokenView.from_ledger(self.state).total_supply)

    def _load(self) -> Json:
        """Read the stored snapshot, refusing one from another chain or one that is inconsistent."""
        st = self._store.read()
        st_chain_id = str(st.get("chain_id") or "").strip()
        if st_chain_id and st_chain_id != self.chain_id:
            raise ExecutorError(f"chain_id mismatch: db={st_chain_id!r} executor={self.chain_id!r}. Refuse to start.")

        ensure_state(st)
        try:
            check_ledger_invariants(st)
        except StateInvariantError as e:
            raise ExecutorError(f"db_invariant_violation: {e}. Refuse to start.") from e
        return st

    def _sync(self) -> None:
        # caller holds self._lock
        stored = self._store.stored_seq()
        if stored is not None and stored != _safe_int(self.state.get("seq"), 0):
            log_event(_log, "snapshot_reloaded", held_seq=self.state.get("seq"), stored_seq=stored)
            self.state = self._load()

    def _initial_state(self, *, owner: str, token_name: str, token_symbol: str, token_decimals: int) -> Json:
        return {
            "chain_id": self.chain_id,
            "seq": 0,
            "time": 0,
            "params": {"owner": owner},
            "token": {
                "name": str(token_name),
                "symbol": str(token_symbol),
                "decimals": int(token_decimals),
                "total_supply": 0,
                "metadata_uri": "",
            },
            "accounts": {},
            "allowances": {},
            "nonces": {},
        }

    # ----------------------------
    # Public accessors
    # ----------------------------

    def read_state(self) -> Json:
        with self._lock:
            self._sync()
            return copy.deepcopy(self.state)

    def view(self) -> TokenView:
        with self._lock:
            self._sync()
            return TokenView.from_ledger(self.state)

    def now(self) -> int:
        """Ledger time a submission made right now would use."""
        with self._lock:
            self._sync()
            return max(_safe_int(self._clock(), 0), _safe_int(self.state.get("time"), 0))

    def receipt(self, seq: int) -> Optional[Json]:
        return self._store.receipt(int(seq))

    def events(self, *, since_id: int = 0, limit: int = 100, name: str = "") -> List[Json]:
        return self._store.events(since_id=since_id, limit=limit, name=name)

    # ----------------------------
    # Tx submission
    # ----------------------------

    def submit_tx(self, env: Any, *, now: Optional[int] = None) -> Json:
        """Apply one tx and persist the outcome. Returns the receipt.

        A rejected tx still gets a receipt (ok=False) and consumes a seq.
        """
        with self._lock:
            for attempt in range(1, self.COMMIT_ATTEMPTS + 1):
                self._sync()
                receipt, working = self._run(env, now)
                try:
                    self._store.commit(st=working, receipt=receipt, events=receipt["events"])
                except StaleSnapshotError as e:
                    if attempt == self.COMMIT_ATTEMPTS:
                        raise ExecutorError(f"ledger_write_conflict: {e}") from e
                    log_event(_log, "commit_retry", level=logging.WARNING, seq=receipt["seq"], attempt=attempt)
                    continue
                self.state = working
                break

        self._observe(receipt, working)
        return receipt

    def _run(self, env: Any, now: Optional[int]) -> Tuple[Json, Json]:
        """Compute the receipt and next snapshot for `env` without persisting."""
        last = _safe_int(self.state.get("time"), 0)
        t = _safe_int(now if now is not None else self._clock(), last)
        t = max(t, last)

        raw = env.to_json() if isinstance(env, TxEnvelope) else env
        seq = _safe_int(self.state.get("seq"), 0) + 1
        tx_type = str(raw.get("tx_type") or "").strip().upper() if isinstance(raw, dict) else ""
        signer = str(raw.get("signer") or "").strip() if isinstance(raw, dict) else ""

        base = copy.deepcopy(self.state)
        base["seq"] = seq
        base["time"] = t

        receipt: Json = {"seq": seq, "tx_type": tx_type, "signer": signer, "time": t}
        events: List[Json] = []

        verdict = admit_tx(
            tx=raw,
            ledger=TokenView.from_ledger(base),
            chain_id=self.chain_id,
            require_signatures=self.require_signatures,
        )
        working = base
        if not verdict.ok:
            receipt.update(ok=False, code=verdict.code, reason=verdict.reason, details=verdict.details)
        else:
            working = copy.deepcopy(base)
            try:
                result = apply_tx(working, raw)
            except ApplyError as e:
                working = base
                receipt.update(ok=False, code=e.code, reason=e.reason, details=e.details)
            else:
                events = list(result.pop("events", []) or [])
                receipt.update(ok=True, result=result)
                nonce = TxEnvelope.from_json(raw).nonce
                if nonce > 0:
                    working["nonces"][normalize_address(signer)] = nonce

        try:
            check_ledger_invariants(working)
        except StateInvariantError as e:
            log_event(_log, "ledger_invariant_violation", level=logging.ERROR, seq=seq, tx_type=tx_type, error=str(e))
            raise ExecutorError(f"ledger_invariant_violation: {e}") from e

        receipt["events"] = events
        return receipt, working

    def _observe(self, receipt: Json, st: Json) -> None:
        tx_type = receipt["tx_type"] or "unknown"
        if receipt.get("ok"):
            inc_counter("tx_applied_total", tx_type=tx_type)
            log_event(_log, "tx_applied", seq=receipt["seq"], tx_type=tx_type, signer=receipt["signer"])
        else:
            inc_counter("tx_rejected_total", code=receipt.get("code") or "unknown")
            log_event(
                _log,
                "tx_rejected",
                level=logging.WARNING,
                seq=receipt["seq"],
                tx_type=tx_type,
                signer=receipt["signer"],
                code=receipt.get("code"),
                reason=receipt.get("reason"),
            )

        for ev in receipt.get("events") or []:
            if ev.get("event") == EV_EXPIRED_BURNED:
                inc_counter("expired_burned_total", int(ev.get("amount", 0)))
                log_event(_log, "expired_burned", account=ev.get("account"), amount=ev.get("amount"), at=ev.get("at"))

        set_gauge("total_supply", TokenView.from_ledger(st).total_supply)
