from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from debtnet_ledger.util.dates import parse_due_date
from debtnet_ledger.util.money import format_amount, format_rate, parse_amount, parse_rate


@pytest.mark.parametrize(
    "text, expected",
    [
        ("5000", Decimal("5000")),
        ("  250.75 ", Decimal("250.75")),
        ("12,5", Decimal("12.5")),
        ("1,234.50", Decimal("1234.50")),
        ("1.234,50", Decimal("1234.50")),
        ("1.234.567,89 ₽", Decimal("1234567.89")),
        ("$3,040.16", Decimal("3040.16")),
        ("1 500 ₽", Decimal("1500")),
    ],
)
def test_parse_amount_accepts_common_forms(text: str, expected: Decimal) -> None:
    res = parse_amount(text)
    assert res.ok
    assert res.value == expected
    assert res.error == ""


@pytest.mark.parametrize("text", ["", "   ", "abc", "0", "-10", "(5)", "NaN", "inf", "1.234,5,0", None])
def test_parse_amount_rejects_invalid(text) -> None:
    res = parse_amount(text)
    assert not res.ok
    assert res.value is None
    assert res.error


def test_parse_rate_empty_means_no_interest() -> None:
    res = parse_rate("")
    assert res.ok
    assert res.value == 0


def test_parse_rate_accepts_percent_sign_and_comma() -> None:
    assert parse_rate("7,5%").value == Decimal("7.5")
    assert parse_rate("0").value == 0


def test_parse_rate_rejects_negative_and_junk() -> None:
    assert not parse_rate("-1").ok
    assert not parse_rate("ten").ok


def test_format_amount_rounds_half_up_to_whole_units() -> None:
    assert format_amount(Decimal("5000")) == "5000 ₽"
    assert format_amount(Decimal("1099.5")) == "1100 ₽"
    assert format_amount(Decimal("1099.49"), "$") == "1099 $"


def test_format_amount_signed() -> None:
    assert format_amount(Decimal("5000"), signed=True) == "+5000 ₽"
    assert format_amount(Decimal("-1100"), signed=True) == "-1100 ₽"
    assert format_amount(Decimal("-0.2"), signed=True) == "+0 ₽"


def test_format_rate_one_decimal() -> None:
    assert format_rate(Decimal("10")) == "10.0%"
    assert format_rate(Decimal("7.25")) == "7.3%"


def test_parse_due_date_forms() -> None:
    expected = datetime(2025, 12, 26, tzinfo=timezone.utc)
    assert parse_due_date("2025-12-26") == expected
    assert parse_due_date("12/26/2025") == expected


@pytest.mark.parametrize("text", ["", "not a date"])
def test_parse_due_date_rejects_junk(text: str) -> None:
    with pytest.raises(ValueError):
        parse_due_date(text)
