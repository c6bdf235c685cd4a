# src/lockvault/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding for persisted snapshots.

    Unknown types are not coerced: a non-JSON value leaking into the vault
    snapshot is a bug and must fail loudly.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


class SqliteDB:
    """SQLite manager for the vault node.

    - single durable DB file for the vault snapshot + event log
    - never shares connections across threads
    - BEGIN IMMEDIATE with bounded retry for writers
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """FULL in prod, NORMAL elsewhere; LOCKVAULT_SQLITE_SYNCHRONOUS overrides."""
        mode = (os.environ.get("LOCKVAULT_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("LOCKVAULT_SQLITE_SYNCHRONOUS") or default).strip().upper()
        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def _connect(self) -> sqlite3.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        timeout_s = float(_env_int("LOCKVAULT_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0
        con = sqlite3.connect(
            self.path,
            timeout=timeout_s,
            isolation_level=None,  # BEGIN/COMMIT are managed explicitly
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        con.execute("PRAGMA journal_mode=WAL;")
        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute(f"PRAGMA busy_timeout={int(timeout_s * 1000)};")
        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS vault_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  name TEXT NOT NULL,
                  fields_json TEXT NOT NULL,
                  created_ts_ms INTEGER NOT NULL
                );
                """
            )

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except Exception:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return "database is locked" in msg or "database is busy" in msg

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Write transaction; retries BEGIN IMMEDIATE with jittered backoff until a deadline."""
        deadline_ts = _now_ms() + max(250, _env_int("LOCKVAULT_SQLITE_WRITE_DEADLINE_MS", 30_000))

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    time.sleep(min(0.25, 0.005 * (2.0 ** min(attempt, 8))) * (0.5 + random.random()))
                    attempt += 1

            try:
                yield con
                con.execute("COMMIT;")
            except Exception:
                con.execute("ROLLBACK;")
                raise


class SqliteVaultStore:
    """Vault snapshot + notification log persisted in SQLite.

    - read(): latest snapshot
    - write(snapshot, events): overwrite the snapshot and append events in one transaction
    - events_after(seq): the notification feed
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM vault_state WHERE id=1;").fetchone() is not None

    def read(self) -> Json:
        with self._db.connection() as con:
            row = con.execute("SELECT state_json FROM vault_state WHERE id=1;").fetchone()
            if row is None:
                raise FileNotFoundError("sqlite vault_state is missing")
            st = json.loads(str(row["state_json"]))
            if not isinstance(st, dict):
                raise ValueError("vault_state is not a JSON object")
            return st

    def write(self, snapshot: Json, events: List[Json] | None = None) -> None:
        if not isinstance(snapshot, dict):
            raise ValueError("vault write expects dict")
        now = _now_ms()
        payload = _canon_json(snapshot)
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO vault_state(id, state_json, updated_ts_ms)
                VALUES(1, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  state_json=excluded.state_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (payload, now),
            )
            for ev in events or []:
                con.execute(
                    "INSERT INTO events(name, fields_json, created_ts_ms) VALUES(?, ?, ?);",
                    (str(ev.get("event") or ""), _canon_json(ev.get("fields") or {}), now),
                )

    def events_after(self, seq: int = 0, *, limit: int = 100) -> List[Json]:
        lim = max(1, min(int(limit), 1000))
        with self._db.connection() as con:
            rows = con.execute(
                "SELECT seq, name, fields_json, created_ts_ms FROM events WHERE seq > ? ORDER BY seq ASC LIMIT ?;",
                (int(seq), lim),
            ).fetchall()
        return [
            {
                "seq": int(r["seq"]),
                "event": str(r["name"]),
                "fields": json.loads(str(r["fields_json"])),
                "created_ts_ms": int(r["created_ts_ms"]),
            }
            for r in rows
        ]
