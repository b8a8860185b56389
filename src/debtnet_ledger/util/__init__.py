from .dates import ensure_utc, parse_due_date
from .money import ParseResult, format_amount, format_rate, parse_amount, parse_rate

__all__ = [
    "ensure_utc",
    "parse_due_date",
    "ParseResult",
    "format_amount",
    "format_rate",
    "parse_amount",
    "parse_rate",
]
