from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .categories import Category, Direction
from .util.dates import ensure_utc, parse_due_date
from .util.money import ParseResult, to_decimal


class LedgerValidationError(ValueError):
    """Raised when a record or operation would leave the ledger in an invalid state."""

    def __init__(self, problems: List[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "invalid debt record")

    @classmethod
    def from_pydantic(cls, err: ValidationError) -> "LedgerValidationError":
        problems = []
        for e in err.errors():
            loc = ".".join(str(p) for p in e.get("loc") or ())
            msg = str(e.get("msg") or "invalid value")
            # pydantic prefixes errors raised from validators with "Value error, ".
            if msg.startswith("Value error, "):
                msg = msg[len("Value error, "):]
            problems.append(f"{loc}: {msg}" if loc else msg)
        return cls(problems)


class PaymentRejected(LedgerValidationError):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_money(value: Any) -> Any:
    if isinstance(value, ParseResult):
        if not value.ok:
            raise ValueError(value.error)
        return value.value
    if isinstance(value, bool):
        raise ValueError("expected a number")
    if isinstance(value, float):
        return to_decimal(value)
    return value


class DebtRecord(BaseModel):
    """
    One debt in the ledger.

    Stored fields keep full precision; rounding happens only when formatting for display.
    Python attributes are snake_case, the persisted document uses the camelCase aliases.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    counterparty_name: str = Field(alias="counterpartyName")
    principal: Decimal
    note: str = ""
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    due_at: Optional[datetime] = Field(default=None, alias="dueAt")
    is_settled: bool = Field(default=False, alias="isSettled")
    category: Category = Category.OTHER
    direction: Direction
    interest_rate_percent: Decimal = Field(default=Decimal("0"), alias="interestRatePercent")
    payments_made: Decimal = Field(default=Decimal("0"), alias="paymentsMade")

    @field_validator("counterparty_name")
    @classmethod
    def _name_not_empty(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("counterparty name must not be empty")
        return v

    @field_validator("note", mode="before")
    @classmethod
    def _note_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("principal", "interest_rate_percent", "payments_made", mode="before")
    @classmethod
    def _money_input(cls, v: Any) -> Any:
        return _coerce_money(v)

    @field_validator("principal")
    @classmethod
    def _principal_positive(cls, v: Decimal) -> Decimal:
        if not v.is_finite() or v <= 0:
            raise ValueError("principal must be greater than zero")
        return v

    @field_validator("interest_rate_percent")
    @classmethod
    def _rate_not_negative(cls, v: Decimal) -> Decimal:
        if not v.is_finite() or v < 0:
            raise ValueError("interest rate cannot be negative")
        return v

    @field_validator("payments_made")
    @classmethod
    def _payments_not_negative(cls, v: Decimal) -> Decimal:
        if not v.is_finite() or v < 0:
            raise ValueError("payments made cannot be negative")
        return v

    @field_validator("due_at", mode="before")
    @classmethod
    def _due_at_input(cls, v: Any) -> Any:
        if v is None or v == "":
            return None
        if isinstance(v, str):
            return parse_due_date(v)
        if isinstance(v, date):
            return ensure_utc(v)
        return v

    @field_validator("created_at", "due_at")
    @classmethod
    def _to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @model_validator(mode="after")
    def _payments_within_balance(self) -> "DebtRecord":
        if self.payments_made > self.amount_with_interest:
            raise ValueError("payments made exceed the amount owed")
        return self

    @classmethod
    def create(cls, **fields: Any) -> "DebtRecord":
        """Build a record, raising LedgerValidationError instead of pydantic's ValidationError."""
        try:
            return cls.model_validate(fields)
        except ValidationError as e:
            raise LedgerValidationError.from_pydantic(e) from None

    # Derived values (never stored)

    @property
    def has_interest(self) -> bool:
        return self.interest_rate_percent > 0

    @property
    def amount_with_interest(self) -> Decimal:
        return self.principal * (1 + self.interest_rate_percent / 100)

    @property
    def interest_amount(self) -> Decimal:
        return self.amount_with_interest - self.principal

    @property
    def remaining_amount(self) -> Decimal:
        return self.amount_with_interest - self.payments_made

    @property
    def is_paid_off(self) -> bool:
        return self.remaining_amount <= 0

    @property
    def is_overdue(self) -> bool:
        return self.is_overdue_at(_utcnow())

    def is_overdue_at(self, now: datetime) -> bool:
        if self.is_settled or self.due_at is None:
            return False
        return ensure_utc(now) > self.due_at

    def is_due_within(self, now: datetime, days: int) -> bool:
        """Unsettled and due after `now` but no later than `days` days from it."""
        if self.is_settled or self.due_at is None:
            return False
        now = ensure_utc(now)
        return now < self.due_at <= now + timedelta(days=days)

    def days_until_due(self, today: Optional[date] = None) -> Optional[int]:
        if self.due_at is None:
            return None
        today = today or _utcnow().date()
        return (self.due_at.date() - today).days

    def signed_amount(self, with_interest: bool = False) -> Decimal:
        value = self.amount_with_interest if with_interest else self.principal
        return value if self.direction == Direction.OWED_TO_USER else -value

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="python", by_alias=True)


class LedgerSummary(BaseModel):
    """Aggregate numbers for a statistics screen."""

    total_owed_to_user: Decimal
    total_owed_to_user_with_interest: Decimal
    total_owed_by_user: Decimal
    total_owed_by_user_with_interest: Decimal
    total_debt_amount: Decimal
    total_paid_amount: Decimal
    net_balance: Decimal

    record_count: int
    active_count: int
    settled_count: int
    overdue_count: int
    upcoming_count: int
