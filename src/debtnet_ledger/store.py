from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Union

from pydantic import ValidationError

from .categories import Category, Direction
from .models import DebtRecord, LedgerSummary, LedgerValidationError, PaymentRejected
from .storage import KeyValueStore
from .util.money import ParseResult, to_decimal


logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "SavedDebts"
DEFAULT_UPCOMING_DAYS = 7

_ZERO = Decimal("0")


class MutationResult(str, Enum):
    APPLIED = "applied"
    NOT_FOUND = "not_found"


class EventKind(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"
    SETTLED_TOGGLED = "settled_toggled"
    PAYMENT_APPLIED = "payment_applied"
    CLEARED = "cleared"
    LOADED = "loaded"


@dataclass(frozen=True)
class LedgerEvent:
    kind: EventKind
    record_id: Optional[str] = None


Listener = Callable[[LedgerEvent], None]


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


def _default_id() -> str:
    return uuid.uuid4().hex


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        # Amounts are written as decimal strings so they reload digit for digit.
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_records(records: Iterable[DebtRecord]) -> bytes:
    docs = [r.to_document() for r in records]
    return json.dumps(docs, default=_json_default, ensure_ascii=False, indent=2).encode("utf-8")


def decode_records(blob: bytes) -> List[DebtRecord]:
    """
    Parse a persisted ledger document. Raises ValueError on anything malformed.
    """
    raw = json.loads(blob.decode("utf-8"), parse_float=Decimal)
    if not isinstance(raw, list):
        raise ValueError(f"expected a JSON array, got {type(raw).__name__}")

    out: List[DebtRecord] = []
    seen: set[str] = set()
    for item in raw:
        if not isinstance(item, dict):
            raise ValueError("ledger entries must be JSON objects")
        rec = DebtRecord.model_validate(item)
        if not rec.id or rec.created_at is None:
            raise ValueError("ledger entry is missing id/createdAt")
        if rec.id in seen:
            raise ValueError(f"duplicate record id {rec.id!r}")
        seen.add(rec.id)
        out.append(rec)
    return out


class LedgerStore:
    """
    Authoritative, ordered collection of debt records.

    Every mutation rewrites the whole collection under one key of the injected
    key-value store, then notifies subscribers.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        *,
        key: str = DEFAULT_STORAGE_KEY,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
        autoload: bool = True,
    ) -> None:
        self._kv = kv
        self.key = key
        self._clock = clock or _default_clock
        self._new_id = id_factory or _default_id
        self._records: List[DebtRecord] = []
        self._issued_ids: set[str] = set()
        self._listeners: List[Listener] = []
        self.last_save_error: Optional[BaseException] = None

        if autoload:
            self.load()

    # Observation

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, kind: EventKind, record_id: Optional[str] = None) -> None:
        event = LedgerEvent(kind=kind, record_id=record_id)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.warning("Ledger listener failed for event=%s", event.kind.value, exc_info=True)

    # Persistence

    def load(self) -> None:
        """
        Replace the in-memory collection with the persisted one.
        A missing or malformed document yields an empty ledger.
        """
        records: List[DebtRecord] = []
        try:
            blob = self._kv.get(self.key)
            if blob is None:
                logger.debug("No persisted ledger under key=%s; starting empty", self.key)
            else:
                records = decode_records(blob)
        except (ValueError, ValidationError, UnicodeDecodeError) as e:
            logger.warning("Persisted ledger under key=%s is malformed; starting empty. (%s)", self.key, e)
            records = []
        except Exception:
            logger.warning("Failed to read persisted ledger under key=%s; starting empty.", self.key, exc_info=True)
            records = []

        self._records = records
        self._issued_ids.update(r.id for r in records)
        logger.debug("Loaded %d ledger record(s)", len(records))
        self._notify(EventKind.LOADED)

    def save(self) -> bool:
        """
        Persist the whole collection. Failures are logged and reported through the
        return value / `last_save_error`; the in-memory state is kept either way.
        """
        try:
            self._kv.set(self.key, encode_records(self._records))
        except Exception as e:
            self.last_save_error = e
            logger.warning("Failed to persist ledger under key=%s", self.key, exc_info=True)
            return False
        self.last_save_error = None
        logger.debug("Saved %d ledger record(s)", len(self._records))
        return True

    # Reads

    def now(self) -> datetime:
        """Current time according to the store's clock."""
        return self._clock()

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[DebtRecord]:
        return iter(self.records)

    @property
    def records(self) -> List[DebtRecord]:
        return [r.model_copy() for r in self._records]

    def get(self, record_id: str) -> Optional[DebtRecord]:
        idx = self._index_of(record_id)
        return self._records[idx].model_copy() if idx is not None else None

    def _index_of(self, record_id: str) -> Optional[int]:
        for idx, rec in enumerate(self._records):
            if rec.id == record_id:
                return idx
        return None

    def _fresh_id(self) -> str:
        for _ in range(100):
            candidate = str(self._new_id())
            if candidate and candidate not in self._issued_ids:
                self._issued_ids.add(candidate)
                return candidate
        raise RuntimeError("id factory keeps returning ids that are already in use")

    # Mutations

    def add(self, record: DebtRecord) -> DebtRecord:
        stored = record.model_copy(update={"id": self._fresh_id(), "created_at": self._clock()})
        # Re-run validation so the clock value is normalized like any other timestamp.
        stored = _revalidate(stored)
        self._records.append(stored)
        self.save()
        self._notify(EventKind.ADDED, stored.id)
        return stored.model_copy()

    def update(self, record: DebtRecord) -> MutationResult:
        idx = self._index_of(record.id)
        if idx is None:
            logger.debug("update: no record with id=%s", record.id)
            return MutationResult.NOT_FOUND

        current = self._records[idx]
        replaced = _revalidate(record.model_copy(update={"created_at": current.created_at}))
        self._records[idx] = replaced
        self.save()
        self._notify(EventKind.UPDATED, replaced.id)
        return MutationResult.APPLIED

    def delete(self, record_id: str) -> MutationResult:
        idx = self._index_of(record_id)
        if idx is None:
            logger.debug("delete: no record with id=%s", record_id)
            return MutationResult.NOT_FOUND

        del self._records[idx]
        self.save()
        self._notify(EventKind.DELETED, record_id)
        return MutationResult.APPLIED

    def toggle_settled(self, record_id: str) -> MutationResult:
        idx = self._index_of(record_id)
        if idx is None:
            logger.debug("toggle_settled: no record with id=%s", record_id)
            return MutationResult.NOT_FOUND

        current = self._records[idx]
        self._records[idx] = current.model_copy(update={"is_settled": not current.is_settled})
        self.save()
        self._notify(EventKind.SETTLED_TOGGLED, record_id)
        return MutationResult.APPLIED

    def mark_settled(self, record_id: str) -> MutationResult:
        rec = self.get(record_id)
        if rec is None:
            return MutationResult.NOT_FOUND
        if rec.is_settled:
            return MutationResult.APPLIED
        return self.toggle_settled(record_id)

    def apply_payment(self, record_id: str, amount: Union[Decimal, int, float, str, ParseResult]) -> MutationResult:
        """
        Add `amount` to the record's payments. The amount must be positive and must
        not exceed the remaining balance; otherwise PaymentRejected is raised and
        nothing changes.
        """
        idx = self._index_of(record_id)
        if idx is None:
            logger.debug("apply_payment: no record with id=%s", record_id)
            return MutationResult.NOT_FOUND

        current = self._records[idx]
        value = _payment_value(amount)
        if value <= 0:
            raise PaymentRejected(["payment must be greater than zero"])
        if value > current.remaining_amount:
            raise PaymentRejected([f"payment {value} exceeds remaining amount {current.remaining_amount}"])

        self._records[idx] = current.model_copy(update={"payments_made": current.payments_made + value})
        self.save()
        self._notify(EventKind.PAYMENT_APPLIED, record_id)
        return MutationResult.APPLIED

    def clear_all(self) -> None:
        self._records = []
        self.save()
        self._notify(EventKind.CLEARED)

    # Aggregates

    def active_records(self) -> List[DebtRecord]:
        return [r.model_copy() for r in self._records if not r.is_settled]

    def settled_records(self) -> List[DebtRecord]:
        return [r.model_copy() for r in self._records if r.is_settled]

    def overdue_records(self) -> List[DebtRecord]:
        now = self._clock()
        return [r.model_copy() for r in self._records if r.is_overdue_at(now)]

    def upcoming_records(self, days: int = DEFAULT_UPCOMING_DAYS) -> List[DebtRecord]:
        now = self._clock()
        return [r.model_copy() for r in self._records if r.is_due_within(now, days)]

    def records_by_direction(self, direction: Direction) -> List[DebtRecord]:
        return [r.model_copy() for r in self._records if r.direction == direction]

    def group_by_category(self) -> Dict[Category, List[DebtRecord]]:
        groups: Dict[Category, List[DebtRecord]] = {}
        for r in self._records:
            groups.setdefault(r.category, []).append(r.model_copy())
        return groups

    def category_totals(self) -> Dict[Category, Decimal]:
        return {cat: sum((r.principal for r in recs), _ZERO) for cat, recs in self.group_by_category().items()}

    def _sum_active(self, direction: Direction, *, with_interest: bool) -> Decimal:
        return sum(
            (
                r.amount_with_interest if with_interest else r.principal
                for r in self._records
                if not r.is_settled and r.direction == direction
            ),
            _ZERO,
        )

    def total_owed_to_user(self) -> Decimal:
        return self._sum_active(Direction.OWED_TO_USER, with_interest=False)

    def total_owed_to_user_with_interest(self) -> Decimal:
        return self._sum_active(Direction.OWED_TO_USER, with_interest=True)

    def total_owed_by_user(self) -> Decimal:
        return self._sum_active(Direction.OWED_BY_USER, with_interest=False)

    def total_owed_by_user_with_interest(self) -> Decimal:
        return self._sum_active(Direction.OWED_BY_USER, with_interest=True)

    def total_debt_amount(self) -> Decimal:
        return sum((r.principal for r in self._records if not r.is_settled), _ZERO)

    def total_paid_amount(self) -> Decimal:
        return sum((r.principal for r in self._records if r.is_settled), _ZERO)

    def net_balance(self) -> Decimal:
        return self.total_owed_to_user() - self.total_owed_by_user()

    def summary(self, upcoming_days: int = DEFAULT_UPCOMING_DAYS) -> LedgerSummary:
        settled = sum(1 for r in self._records if r.is_settled)
        return LedgerSummary(
            total_owed_to_user=self.total_owed_to_user(),
            total_owed_to_user_with_interest=self.total_owed_to_user_with_interest(),
            total_owed_by_user=self.total_owed_by_user(),
            total_owed_by_user_with_interest=self.total_owed_by_user_with_interest(),
            total_debt_amount=self.total_debt_amount(),
            total_paid_amount=self.total_paid_amount(),
            net_balance=self.net_balance(),
            record_count=len(self._records),
            active_count=len(self._records) - settled,
            settled_count=settled,
            overdue_count=len(self.overdue_records()),
            upcoming_count=len(self.upcoming_records(upcoming_days)),
        )


def sorted_for_display(records: Iterable[DebtRecord]) -> List[DebtRecord]:
    """Newest first, the order list screens show records in."""
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(records, key=lambda r: r.created_at or epoch, reverse=True)


def _revalidate(record: DebtRecord) -> DebtRecord:
    try:
        return DebtRecord.model_validate(record.model_dump(mode="python"))
    except ValidationError as e:
        raise LedgerValidationError.from_pydantic(e) from None


def _payment_value(amount: Union[Decimal, int, float, str, ParseResult]) -> Decimal:
    if isinstance(amount, ParseResult):
        if not amount.ok:
            raise PaymentRejected([amount.error])
        return amount.value
    try:
        value = to_decimal(amount)
    except (ArithmeticError, ValueError, TypeError):
        raise PaymentRejected([f"not a number: {amount!r}"]) from None
    if not value.is_finite():
        raise PaymentRejected([f"not a finite number: {amount!r}"])
    return value
