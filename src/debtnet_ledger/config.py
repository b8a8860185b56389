from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Literal, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from .storage import FileKeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore
from .store import DEFAULT_STORAGE_KEY, DEFAULT_UPCOMING_DAYS
from .util.money import DEFAULT_CURRENCY_SYMBOL


logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %d", name, raw, default)
        return default


def _default_config_from_env() -> dict:
    """
    Env-only defaults, so a `.env` file is enough for most setups.
    A YAML config file can still override any of these.
    """
    return {
        "storage": {
            "backend": os.getenv("LEDGER_STORAGE_BACKEND", "sqlite"),
            "path": os.getenv("LEDGER_STORAGE_PATH", "data/ledger.db"),
            "key": os.getenv("LEDGER_STORAGE_KEY", DEFAULT_STORAGE_KEY),
        },
        "display": {
            "currency_symbol": os.getenv("LEDGER_CURRENCY_SYMBOL", DEFAULT_CURRENCY_SYMBOL),
            "upcoming_window_days": _env_int("LEDGER_UPCOMING_DAYS", DEFAULT_UPCOMING_DAYS),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", "data/ledger.log"),
        },
    }


class StorageConfig(BaseModel):
    # sqlite: `path` is the DB file; file: `path` is a directory holding `<key>.json`.
    backend: Literal["sqlite", "file", "memory"] = "sqlite"
    path: str = "data/ledger.db"
    key: str = DEFAULT_STORAGE_KEY

    @field_validator("backend", mode="before")
    @classmethod
    def _normalize_backend(cls, v: object) -> object:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("key")
    @classmethod
    def _key_not_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("storage.key must not be empty")
        return v


class DisplayConfig(BaseModel):
    currency_symbol: str = DEFAULT_CURRENCY_SYMBOL
    upcoming_window_days: int = Field(default=DEFAULT_UPCOMING_DAYS, ge=1)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = "data/ledger.log"


class AppConfig(BaseModel):
    storage: StorageConfig = StorageConfig()
    display: DisplayConfig = DisplayConfig()
    logging: LoggingConfig = LoggingConfig()


def load_config(path: Union[str, Path]) -> AppConfig:
    p = Path(path)
    raw: dict = {}
    if p.exists():
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)


def open_kv_store(cfg: StorageConfig) -> Union[MemoryKeyValueStore, FileKeyValueStore, SqliteKeyValueStore]:
    if cfg.backend == "memory":
        return MemoryKeyValueStore()
    if cfg.backend == "file":
        return FileKeyValueStore(cfg.path)
    return SqliteKeyValueStore(cfg.path)

