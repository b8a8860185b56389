from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union


DEFAULT_CURRENCY_SYMBOL = "₽"

_CURRENCY_CHARS_RE = re.compile(r"[\s$€£₽ ]")

Number = Union[Decimal, int, float, str]


@dataclass(frozen=True)
class ParseResult:
    """
    Outcome of parsing user-entered amount/rate text.

    Exactly one of `value` / `error` is meaningful: check `ok` first.
    """

    value: Optional[Decimal] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.value is not None and not self.error

    @classmethod
    def success(cls, value: Decimal) -> "ParseResult":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "ParseResult":
        return cls(value=None, error=error)


def _normalize_number_text(value: str) -> str:
    s = _CURRENCY_CHARS_RE.sub("", value.strip())

    # Handle parentheses as negative
    if s.startswith("(") and s.endswith(")"):
        s = "-" + s[1:-1].strip()

    # With both separators the last one is the decimal mark: "1,234.50" and "1.234,50".
    # A lone comma is the decimal separator: "12,5".
    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        s = s.replace(",", ".")
    return s


def _to_decimal(value: Optional[str]) -> ParseResult:
    if value is None:
        return ParseResult.failure("value is missing")
    s = _normalize_number_text(value)
    if not s:
        return ParseResult.failure("value is empty")
    try:
        dec = Decimal(s)
    except InvalidOperation:
        return ParseResult.failure(f"not a number: {value!r}")
    if not dec.is_finite():
        return ParseResult.failure(f"not a finite number: {value!r}")
    return ParseResult.success(dec)


def parse_amount(value: Optional[str]) -> ParseResult:
    """
    Parse a positive monetary amount, e.g.:
    - "5000"
    - "1 500,50 ₽"
    - "$3,040.16"
    """
    res = _to_decimal(value)
    if not res.ok:
        return res
    if res.value <= 0:
        return ParseResult.failure("amount must be greater than zero")
    return res


def parse_rate(value: Optional[str]) -> ParseResult:
    """
    Parse an interest rate in percent. Empty input means "no interest" (0).
    """
    s = (value or "").strip().rstrip("%").strip()
    if not s:
        return ParseResult.success(Decimal("0"))
    res = _to_decimal(s)
    if not res.ok:
        return res
    if res.value < 0:
        return ParseResult.failure("interest rate cannot be negative")
    return res


def to_decimal(value: Number) -> Decimal:
    """Coerce a numeric value to Decimal without going through binary float noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def format_amount(value: Number, symbol: str = DEFAULT_CURRENCY_SYMBOL, *, signed: bool = False) -> str:
    dec = to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    if dec == 0:
        dec = abs(dec)
    text = f"{dec:+.0f}" if signed else f"{dec:.0f}"
    return f"{text} {symbol}".strip()


def format_rate(value: Number) -> str:
    dec = to_decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return f"{dec:.1f}%"
