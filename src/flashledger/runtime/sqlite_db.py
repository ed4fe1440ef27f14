# src/flashledger/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from flashledger.runtime.errors import StaleSnapshotError

Json = Dict[str, Any]

SCHEMA_VERSION = 1

_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT NOT NULL);",
    """
    CREATE TABLE IF NOT EXISTS ledger_state (
      id INTEGER PRIMARY KEY CHECK (id = 1),
      seq INTEGER NOT NULL,
      state_json TEXT NOT NULL,
      updated_ts_ms INTEGER NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS receipts (
      seq INTEGER PRIMARY KEY,
      tx_type TEXT NOT NULL,
      signer TEXT NOT NULL,
      ok INTEGER NOT NULL,
      ledger_time INTEGER NOT NULL,
      receipt_json TEXT NOT NULL,
      created_ts_ms INTEGER NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
      event_id INTEGER PRIMARY KEY AUTOINCREMENT,
      seq INTEGER NOT NULL REFERENCES receipts(seq),
      name TEXT NOT NULL,
      event_json TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_events_seq ON events(seq);",
    "CREATE INDEX IF NOT EXISTS idx_events_name ON events(name);",
)

_SYNC_LEVELS = ("OFF", "NORMAL", "FULL", "EXTRA")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _dump(obj: Any) -> str:
    # no default= hook: a non-JSON value in ledger state must raise TypeError here
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _int_env(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class SqliteSettings:
    """Connection tuning, resolved once per SqliteDB.

    synchronous defaults to FULL in prod and NORMAL elsewhere.
    """

    synchronous: str = "FULL"
    connect_timeout_ms: int = 30_000
    busy_timeout_ms: int = 30_000
    write_deadline_ms: int = 30_000

    @classmethod
    def from_env(cls) -> "SqliteSettings":
        prod = (os.environ.get("FLASH_MODE") or "prod").strip().lower() == "prod"
        default_sync = "FULL" if prod else "NORMAL"
        sync = (os.environ.get("FLASH_SQLITE_SYNCHRONOUS") or default_sync).strip().upper()
        connect_ms = max(0, _int_env("FLASH_SQLITE_CONNECT_TIMEOUT_MS", 30_000))
        return cls(
            synchronous=sync if sync in _SYNC_LEVELS else default_sync,
            connect_timeout_ms=connect_ms,
            busy_timeout_ms=max(0, _int_env("FLASH_SQLITE_BUSY_TIMEOUT_MS", connect_ms)),
            write_deadline_ms=max(250, _int_env("FLASH_SQLITE_WRITE_DEADLINE_MS", 30_000)),
        )


def _writer_busy(e: sqlite3.OperationalError) -> bool:
    msg = str(e).lower()
    return "database is locked" in msg or "database is busy" in msg


class SqliteDB:
    """One ledger database file in WAL mode.

    Every call opens its own connection; nothing is shared across threads.
    Writers go through write_tx(), which takes the write lock up front
    (BEGIN IMMEDIATE) and keeps retrying with jittered backoff while another
    writer holds it, up to the configured deadline.
    """

    def __init__(self, *, path: str, settings: Optional[SqliteSettings] = None) -> None:
        self.path = str(path)
        self.settings = settings or SqliteSettings.from_env()

    def _open(self) -> sqlite3.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        s = self.settings
        con = sqlite3.connect(
            self.path,
            timeout=s.connect_timeout_ms / 1000.0,
            isolation_level=None,
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        journal = str(con.execute("PRAGMA journal_mode=WAL;").fetchone()[0]).lower()
        if journal not in {"wal", "memory"}:
            con.close()
            raise RuntimeError(f"{self.path}: journal_mode is {journal!r}, WAL is required")

        con.execute(f"PRAGMA synchronous={s.synchronous};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute(f"PRAGMA busy_timeout={s.busy_timeout_ms};")
        return con

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._open()
        try:
            yield con
        finally:
            con.close()

    def _begin_immediate(self, con: sqlite3.Connection) -> None:
        give_up_at = time.monotonic() + self.settings.write_deadline_ms / 1000.0
        delay = 0.005
        while True:
            try:
                con.execute("BEGIN IMMEDIATE;")
                return
            except sqlite3.OperationalError as e:
                if not _writer_busy(e) or time.monotonic() >= give_up_at:
                    raise
            time.sleep(delay * random.uniform(0.5, 1.5))
            delay = min(0.25, delay * 2)

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Single write transaction: COMMIT on success, ROLLBACK on any error."""
        with self.connection() as con:
            self._begin_immediate(con)
            try:
                yield con
            except BaseException:
                con.execute("ROLLBACK;")
                raise
            con.execute("COMMIT;")

    def init_schema(self) -> None:
        """Create tables if needed, then refuse a file from another schema version."""
        with self.write_tx() as con:
            for stmt in _SCHEMA:
                con.execute(stmt)

            row = con.execute("SELECT value FROM meta WHERE key='schema_version';").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(SCHEMA_VERSION),))
                return
            have = str(row["value"])
            if have != str(SCHEMA_VERSION):
                raise RuntimeError(
                    f"{self.path}: schema_version {have!r} does not match {SCHEMA_VERSION}; refusing to open"
                )


class SqliteLedgerStore:
    """Ledger snapshot, receipts and events persisted in SQLite.

    The snapshot is one row (id=1). commit() writes snapshot, receipt and the
    receipt's events in one transaction; a receipt never lands without its
    state.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        db.init_schema()

    def _snapshot_row(self, con: sqlite3.Connection) -> Optional[sqlite3.Row]:
        return con.execute("SELECT state_json FROM ledger_state WHERE id=1;").fetchone()

    @staticmethod
    def _seq_in(con: sqlite3.Connection) -> Optional[int]:
        row = con.execute("SELECT seq FROM ledger_state WHERE id=1;").fetchone()
        return None if row is None else int(row["seq"])

    def stored_seq(self) -> Optional[int]:
        """seq of the committed snapshot, or None before genesis."""
        with self._db.connection() as con:
            return self._seq_in(con)

    def exists(self) -> bool:
        with self._db.connection() as con:
            return self._snapshot_row(con) is not None

    def read(self) -> Json:
        with self._db.connection() as con:
            row = self._snapshot_row(con)
        if row is None:
            raise FileNotFoundError(f"{self._db.path}: no ledger snapshot")
        snap = json.loads(row["state_json"])
        if not isinstance(snap, dict):
            raise ValueError(f"{self._db.path}: ledger snapshot is {type(snap).__name__}, not an object")
        return snap

    @staticmethod
    def _put_snapshot(con: sqlite3.Connection, st: Json) -> None:
        con.execute(
            "INSERT OR REPLACE INTO ledger_state(id, seq, state_json, updated_ts_ms) VALUES(1, ?, ?, ?);",
            (int(st.get("seq", 0)), _dump(st), _now_ms()),
        )

    def write(self, st: Json) -> None:
        """Overwrite the snapshot alone (genesis and maintenance only)."""
        if not isinstance(st, dict):
            raise TypeError(f"snapshot must be a dict, got {type(st).__name__}")
        with self._db.write_tx() as con:
            self._put_snapshot(con, st)

    def commit(self, *, st: Json, receipt: Json, events: List[Json]) -> None:
        """Append receipt `seq` on top of snapshot `seq - 1`.

        Raises StaleSnapshotError, writing nothing, when the stored snapshot is
        not the one this commit was computed from.
        """
        seq = int(receipt["seq"])
        with self._db.write_tx() as con:
            stored = self._seq_in(con)
            if stored != seq - 1:
                raise StaleSnapshotError(seq - 1, stored)
            con.execute(
                """
                INSERT INTO receipts(seq, tx_type, signer, ok, ledger_time, receipt_json, created_ts_ms)
                VALUES(?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    seq,
                    str(receipt.get("tx_type") or ""),
                    str(receipt.get("signer") or ""),
                    1 if receipt.get("ok") else 0,
                    int(receipt.get("time", 0)),
                    _dump(receipt),
                    _now_ms(),
                ),
            )
            for ev in events:
                con.execute(
                    "INSERT INTO events(seq, name, event_json) VALUES(?, ?, ?);",
                    (seq, str(ev.get("event") or ""), _dump(ev)),
                )
            self._put_snapshot(con, st)

    def receipt(self, seq: int) -> Optional[Json]:
        with self._db.connection() as con:
            row = con.execute("SELECT receipt_json FROM receipts WHERE seq=?;", (int(seq),)).fetchone()
            if row is None:
                return None
            return json.loads(str(row["receipt_json"]))

    def events(self, *, since_id: int = 0, limit: int = 100, name: str = "") -> List[Json]:
        q = "SELECT event_id, seq, event_json FROM events WHERE event_id > ?"
        args: List[Any] = [int(since_id)]
        if name:
            q += " AND name = ?"
            args.append(str(name))
        q += " ORDER BY event_id ASC LIMIT ?;"
        args.append(max(1, int(limit)))

        out: List[Json] = []
        with self._db.connection() as con:
            for row in con.execute(q, tuple(args)).fetchall():
                ev = json.loads(str(row["event_json"]))
                ev["event_id"] = int(row["event_id"])
                ev["seq"] = int(row["seq"])
                out.append(ev)
        return out
