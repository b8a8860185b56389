from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from debtnet_ledger.categories import Direction
from debtnet_ledger.models import DebtRecord
from debtnet_ledger.storage import FileKeyValueStore, SqliteKeyValueStore
from debtnet_ledger.store import LedgerStore


def _debt(name: str) -> DebtRecord:
    return DebtRecord.create(counterparty_name=name, principal=Decimal("100"), direction=Direction.OWED_BY_USER)


def test_file_store_round_trip(tmp_path: Path) -> None:
    kv = FileKeyValueStore(str(tmp_path / "data"))
    assert kv.get("SavedDebts") is None

    kv.set("SavedDebts", b"[1, 2]")
    assert kv.get("SavedDebts") == b"[1, 2]"
    assert (tmp_path / "data" / "SavedDebts.json").exists()
    assert not list((tmp_path / "data").glob("*.tmp"))


def test_file_store_sanitizes_key(tmp_path: Path) -> None:
    kv = FileKeyValueStore(str(tmp_path))
    assert kv.path_for("../evil key").parent == tmp_path


def test_ledger_survives_reopen_with_file_store(tmp_path: Path) -> None:
    s1 = LedgerStore(FileKeyValueStore(str(tmp_path)))
    rec = s1.add(_debt("Bob"))

    s2 = LedgerStore(FileKeyValueStore(str(tmp_path)))
    assert [r.id for r in s2.records] == [rec.id]


def test_sqlite_store_round_trip_and_backup(tmp_path: Path) -> None:
    db_path = tmp_path / "ledger.db"
    kv = SqliteKeyValueStore(str(db_path))
    try:
        assert kv.get("SavedDebts") is None
        kv.set("SavedDebts", b"first")
        kv.set("SavedDebts", b"second")
        assert kv.get("SavedDebts") == b"second"
    finally:
        kv.close()

    bak = tmp_path / "ledger.db.bak"
    assert db_path.exists()
    assert bak.exists()
    assert bak.stat().st_size > 0


def test_sqlite_store_restores_from_backup_when_db_corrupted(tmp_path: Path) -> None:
    db_path = tmp_path / "ledger.db"

    with SqliteKeyValueStore(str(db_path)) as kv1:
        s1 = LedgerStore(kv1)
        rec = s1.add(_debt("Carol"))

    assert (tmp_path / "ledger.db.bak").exists()

    # Corrupt the main DB file.
    db_path.write_bytes(b"not a sqlite db")

    # Re-open: should quarantine the corrupted DB and restore from backup.
    with SqliteKeyValueStore(str(db_path)) as kv2:
        s2 = LedgerStore(kv2)
        assert [r.id for r in s2.records] == [rec.id]

    quarantined = list(tmp_path.glob("ledger.db.corrupt-*"))
    assert len(quarantined) == 1
    assert quarantined[0].read_bytes() == b"not a sqlite db"


def test_sqlite_store_without_backup_starts_fresh(tmp_path: Path) -> None:
    db_path = tmp_path / "ledger.db"
    db_path.write_bytes(b"garbage")

    with SqliteKeyValueStore(str(db_path)) as kv:
        assert len(LedgerStore(kv)) == 0
        assert kv.get("SavedDebts") is None


def test_sqlite_store_with_unreadable_backup_starts_fresh(tmp_path: Path) -> None:
    db_path = tmp_path / "ledger.db"
    db_path.write_bytes(b"garbage")
    (tmp_path / "ledger.db.bak").write_bytes(b"also garbage")

    with SqliteKeyValueStore(str(db_path)) as kv:
        assert kv.get("SavedDebts") is None
        kv.set("SavedDebts", b"[]")

    assert len(list(tmp_path.glob("ledger.db.corrupt-*"))) == 1
    with SqliteKeyValueStore(str(db_path)) as kv:
        assert kv.get("SavedDebts") == b"[]"
