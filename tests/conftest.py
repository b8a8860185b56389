from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator

import pytest


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from debtnet_ledger.storage import MemoryKeyValueStore  # noqa: E402
from debtnet_ledger.store import LedgerStore  # noqa: E402


FIXED_NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _counter_ids() -> Callable[[], str]:
    n = iter(range(1, 10_000))
    return lambda: f"debt-{next(n)}"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def store(kv: MemoryKeyValueStore, clock: FakeClock) -> Iterator[LedgerStore]:
    yield LedgerStore(kv, clock=clock, id_factory=_counter_ids())
