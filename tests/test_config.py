from __future__ import annotations

from pathlib import Path

import pytest

from debtnet_ledger.config import load_config, open_kv_store
from debtnet_ledger.storage import FileKeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore


_ENV_VARS = (
    "LEDGER_STORAGE_BACKEND",
    "LEDGER_STORAGE_PATH",
    "LEDGER_STORAGE_KEY",
    "LEDGER_CURRENCY_SYMBOL",
    "LEDGER_UPCOMING_DAYS",
    "LOG_LEVEL",
    "LOG_FILE",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path: Path, name: str, text: str) -> Path:
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    return p


def test_defaults_without_config_file(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "missing.yaml")
    assert cfg.storage.backend == "sqlite"
    assert cfg.storage.path == "data/ledger.db"
    assert cfg.storage.key == "SavedDebts"
    assert cfg.display.currency_symbol == "₽"
    assert cfg.display.upcoming_window_days == 7
    assert cfg.logging.level == "INFO"


def test_env_overrides_defaults(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "FILE")
    monkeypatch.setenv("LEDGER_STORAGE_PATH", str(tmp_path / "ledger"))
    monkeypatch.setenv("LEDGER_CURRENCY_SYMBOL", "$")
    monkeypatch.setenv("LEDGER_UPCOMING_DAYS", "14")

    cfg = load_config(tmp_path / "missing.yaml")
    assert cfg.storage.backend == "file"
    assert cfg.storage.path == str(tmp_path / "ledger")
    assert cfg.display.currency_symbol == "$"
    assert cfg.display.upcoming_window_days == 14


def test_bad_upcoming_days_env_falls_back(tmp_path: Path, monkeypatch, caplog) -> None:
    monkeypatch.setenv("LEDGER_UPCOMING_DAYS", "soon")
    caplog.set_level("WARNING")
    cfg = load_config(tmp_path / "missing.yaml")
    assert cfg.display.upcoming_window_days == 7
    assert "LEDGER_UPCOMING_DAYS" in caplog.text


def test_yaml_overrides_env_and_expands_vars(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "file")
    monkeypatch.setenv("LEDGER_HOME", str(tmp_path))
    cfg_path = _write(
        tmp_path,
        "cfg.yaml",
        """
storage:
  backend: memory
  path: "${LEDGER_HOME}/db"
display:
  currency_symbol: "EUR"
""",
    )
    cfg = load_config(cfg_path)
    assert cfg.storage.backend == "memory"
    assert cfg.storage.path == f"{tmp_path}/db"
    assert cfg.storage.key == "SavedDebts"
    assert cfg.display.currency_symbol == "EUR"


@pytest.mark.parametrize(
    "text",
    [
        "storage:\n  backend: postgres\n",
        "storage:\n  key: '  '\n",
        "display:\n  upcoming_window_days: 0\n",
    ],
)
def test_invalid_config_rejected(tmp_path: Path, text: str) -> None:
    cfg_path = _write(tmp_path, "cfg.yaml", text)
    with pytest.raises(Exception):
        _ = load_config(cfg_path)


def test_open_kv_store_per_backend(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "memory")
    assert isinstance(open_kv_store(load_config(tmp_path / "none.yaml").storage), MemoryKeyValueStore)

    monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "file")
    monkeypatch.setenv("LEDGER_STORAGE_PATH", str(tmp_path / "files"))
    assert isinstance(open_kv_store(load_config(tmp_path / "none.yaml").storage), FileKeyValueStore)

    monkeypatch.setenv("LEDGER_STORAGE_BACKEND", "sqlite")
    monkeypatch.setenv("LEDGER_STORAGE_PATH", str(tmp_path / "ledger.db"))
    kv = open_kv_store(load_config(tmp_path / "none.yaml").storage)
    try:
        assert isinstance(kv, SqliteKeyValueStore)
    finally:
        kv.close()
