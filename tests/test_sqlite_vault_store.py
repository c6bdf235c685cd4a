from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from lockvault.runtime.sqlite_db import SqliteDB, SqliteVaultStore


def test_snapshot_and_events_persist(tmp_path: Path) -> None:
    db = SqliteDB(path=str(tmp_path / "vault.db"))
    store = SqliteVaultStore(db=db)
    assert store.exists() is False

    store.write({"vault": {"n": 1}}, [{"event": "Deposited", "fields": {"id": 1, "amount": 10**18}}])
    store.write({"vault": {"n": 2}}, [{"event": "Harvested", "fields": {"id": 1, "reward": 3}}])

    reopened = SqliteVaultStore(db=SqliteDB(path=str(tmp_path / "vault.db")))
    assert reopened.exists() is True
    assert reopened.read() == {"vault": {"n": 2}}

    evs = reopened.events_after(0)
    assert [e["seq"] for e in evs] == [1, 2]
    assert evs[0]["event"] == "Deposited"
    assert evs[0]["fields"] == {"id": 1, "amount": 10**18}
    assert reopened.events_after(1, limit=10)[0]["event"] == "Harvested"
    assert reopened.events_after(2) == []


def test_read_without_snapshot_raises(tmp_path: Path) -> None:
    store = SqliteVaultStore(db=SqliteDB(path=str(tmp_path / "vault.db")))
    with pytest.raises(FileNotFoundError):
        store.read()


def test_schema_version_mismatch_refuses_to_start(tmp_path: Path) -> None:
    path = str(tmp_path / "vault.db")
    SqliteDB(path=path).init_schema()

    con = sqlite3.connect(path)
    con.execute("UPDATE meta SET value='99' WHERE key='schema_version';")
    con.commit()
    con.close()

    with pytest.raises(RuntimeError):
        SqliteDB(path=path).init_schema()


def test_wal_and_synchronous_pragmas(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOCKVAULT_MODE", "prod")
    monkeypatch.delenv("LOCKVAULT_SQLITE_SYNCHRONOUS", raising=False)
    db = SqliteDB(path=str(tmp_path / "vault.db"))
    db.init_schema()

    with db.connection() as con:
        assert str(con.execute("PRAGMA journal_mode;").fetchone()[0]).lower() == "wal"
        # FULL is the prod default.
        assert int(con.execute("PRAGMA synchronous;").fetchone()[0]) == 2

    monkeypatch.setenv("LOCKVAULT_SQLITE_SYNCHRONOUS", "normal")
    with db.connection() as con:
        assert int(con.execute("PRAGMA synchronous;").fetchone()[0]) == 1


def test_failed_write_leaves_previous_snapshot(tmp_path: Path) -> None:
    store = SqliteVaultStore(db=SqliteDB(path=str(tmp_path / "vault.db")))
    store.write({"v": 1})

    with pytest.raises(TypeError):
        store.write({"v": object()})

    assert store.read() == {"v": 1}
