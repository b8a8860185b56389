from __future__ import annotations

import logging
import re
import shutil
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol


logger = logging.getLogger(__name__)

_SAFE_KEY_RE = re.compile(r"[^A-Za-z0-9._-]+")


class KeyValueStore(Protocol):
    """Anything that can durably hold one blob per key."""

    def get(self, key: str) -> Optional[bytes]: ...

    def set(self, key: str, value: bytes) -> None: ...


class MemoryKeyValueStore:
    def __init__(self, initial: Optional[Dict[str, bytes]] = None) -> None:
        self._data: Dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def close(self) -> None:
        return None


class FileKeyValueStore:
    """
    One file per key under `directory` (e.g. `data/SavedDebts.json`).

    Writes go to a temp file first and are swapped in with an atomic replace,
    so a crash mid-write never leaves a truncated document behind.
    """

    def __init__(self, directory: str) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        slug = _SAFE_KEY_RE.sub("_", (key or "").strip()) or "default"
        return self.directory / f"{slug}.json"

    def get(self, key: str) -> Optional[bytes]:
        p = self.path_for(key)
        if not p.exists():
            return None
        return p.read_bytes()

    def set(self, key: str, value: bytes) -> None:
        out = self.path_for(key)
        tmp = out.with_name(out.name + ".tmp")
        tmp.write_bytes(value)
        tmp.replace(out)

    def close(self) -> None:
        return None


class SqliteKeyValueStore:
    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._backup_path = self.db_path.with_name(self.db_path.name + ".bak")

        # Self-heal on corrupted/missing DB: restore from backup when possible.
        self._conn = self._open_or_restore()
        self._ensure_schema()

        # Ensure we have *some* backup available for next time.
        self._maybe_backup(if_missing=True)

    def __enter__(self) -> "SqliteKeyValueStore":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def close(self) -> None:
        # Refresh the last-known-good snapshot before letting go of the connection.
        self._maybe_backup(if_missing=False)
        self._conn.close()

    def _open_or_restore(self) -> sqlite3.Connection:
        """
        Open the ledger DB. An unreadable file is moved aside to `.corrupt-<stamp>`
        and replaced by the last-known-good backup when one exists.
        """
        if not self.db_path.exists():
            return sqlite3.connect(self.db_path)

        conn = _connect_if_healthy(self.db_path)
        if conn is not None:
            return conn

        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        quarantined = self.db_path.with_name(self.db_path.name + f".corrupt-{stamp}")
        self.db_path.replace(quarantined)
        logger.warning("Ledger DB is unreadable; moved it to %s", quarantined)

        if self._backup_path.exists():
            shutil.copy2(self._backup_path, self.db_path)
            conn = _connect_if_healthy(self.db_path)
            if conn is not None:
                logger.warning("Restored ledger DB from backup: %s", self._backup_path)
                return conn
            self.db_path.unlink()
            logger.warning("Ledger DB backup is unreadable too; creating a fresh DB.")
        else:
            logger.warning("No ledger DB backup found; creating a fresh DB.")

        return sqlite3.connect(self.db_path)

    def _maybe_backup(self, *, if_missing: bool) -> None:
        if if_missing and self._backup_path.exists():
            return
        try:
            self.backup()
        except (sqlite3.Error, OSError):
            logger.warning("Failed to write ledger DB backup.", exc_info=True)

    def backup(self) -> None:
        """
        Write/refresh a last-known-good backup of the ledger DB at `<db_path>.bak`.
        """
        tmp = self._backup_path.with_name(self._backup_path.name + ".tmp")
        tmp.unlink(missing_ok=True)

        # Use SQLite online backup API for a consistent snapshot.
        dst = sqlite3.connect(tmp)
        try:
            self._conn.backup(dst)
        finally:
            dst.close()

        tmp.replace(self._backup_path)

    def _ensure_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
              key TEXT PRIMARY KEY,
              value BLOB NOT NULL,
              updated_at TEXT NOT NULL
            );
            """
        )
        self._conn.commit()

    def get(self, key: str) -> Optional[bytes]:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?;", (key,)).fetchone()
        if row is None:
            return None
        return bytes(row[0])

    def set(self, key: str, value: bytes) -> None:
        now = datetime.now(timezone.utc).isoformat()
        self._conn.execute(
            """
            INSERT INTO kv(key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
              value = excluded.value,
              updated_at = excluded.updated_at;
            """,
            (key, sqlite3.Binary(value), now),
        )
        self._conn.commit()


def _connect_if_healthy(path: Path) -> Optional[sqlite3.Connection]:
    conn = sqlite3.connect(path)
    try:
        row = conn.execute("PRAGMA quick_check;").fetchone()
    except sqlite3.DatabaseError:
        row = None
    if row and row[0] == "ok":
        return conn
    conn.close()
    return None
