"""SQLite account store for the ledger.

Accounts are opaque byte blobs keyed by their derived address.  The store
offers create-only writes: a second insert at an occupied address fails
atomically, which is the only uniqueness guarantee the handlers rely on.
"""
from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Final

__all__ = ["AccountExistsError", "AccountRow", "SQLitePersistence"]


class AccountExistsError(RuntimeError):
    """Raised when an account already occupies the requested address."""

    def __init__(self, address: bytes) -> None:
        super().__init__(f"account {address.hex()} already in use")
        self.address = address


@dataclass(frozen=True, slots=True)
class AccountRow:
    address: bytes
    kind: str
    owner: bytes | None
    data: bytes
    created_at: int


class SQLitePersistence:
    """Lightweight wrapper that initialises the account schema."""

    _SCHEMA: Final[str] = """
    PRAGMA journal_mode=WAL;

    CREATE TABLE IF NOT EXISTS accounts (
        address BLOB PRIMARY KEY,
        kind TEXT NOT NULL,
        owner BLOB,
        data BLOB NOT NULL,
        created_at INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_accounts_kind_owner
        ON accounts(kind, owner);
    """

    def __init__(self, db_path: str | Path) -> None:
        self._path = Path(db_path)
        if not self._path.parent.exists():
            self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._path, isolation_level=None, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._write_lock = threading.Lock()
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    def _ensure_schema(self) -> None:
        self._conn.executescript(self._SCHEMA)

    @staticmethod
    def _row(row: sqlite3.Row) -> AccountRow:
        owner = row["owner"]
        return AccountRow(
            address=bytes(row["address"]),
            kind=row["kind"],
            owner=bytes(owner) if owner is not None else None,
            data=bytes(row["data"]),
            created_at=int(row["created_at"]),
        )

    def insert_if_absent(
        self,
        address: bytes,
        *,
        kind: str,
        data: bytes,
        created_at: int,
        owner: bytes | None = None,
    ) -> None:
        with self._write_lock:
            try:
                with self._conn:
                    self._conn.execute(
                        "INSERT INTO accounts(address, kind, owner, data, created_at) VALUES(?, ?, ?, ?, ?)",
                        (address, kind, owner, data, created_at),
                    )
            except sqlite3.IntegrityError as exc:
                raise AccountExistsError(address) from exc

    def load(self, address: bytes) -> AccountRow | None:
        row = self._conn.execute("SELECT * FROM accounts WHERE address = ?", (address,)).fetchone()
        if row is None:
            return None
        return self._row(row)

    def list_by_owner(self, kind: str, owner: bytes) -> list[AccountRow]:
        rows = self._conn.execute(
            "SELECT * FROM accounts WHERE kind = ? AND owner = ?",
            (kind, owner),
        ).fetchall()
        return [self._row(row) for row in rows]

    def snapshot(self) -> list[tuple[bytes, str, bytes | None, bytes, int]]:
        rows = self._conn.execute(
            "SELECT address, kind, owner, data, created_at FROM accounts ORDER BY address"
        ).fetchall()
        return [
            (bytes(row[0]), row[1], bytes(row[2]) if row[2] is not None else None, bytes(row[3]), int(row[4]))
            for row in rows
        ]
