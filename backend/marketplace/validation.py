from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from urllib.parse import urlparse


# Maximum money amount: 9,999,999.99
# Matches Numeric(12, 2) headroom
MAX_MONEY = Decimal("9999999.99")

_THOUSANDS_SEPARATOR = re.compile(r"(?<=\d),(?=\d{3}(\D|$))")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., deleting a job while it runs)."""


class NotFoundError(LookupError):
    """404-level: resource missing or outside the caller's tenant."""


def parse_number(value: str) -> Decimal:
    """
    Parse a spreadsheet number, tolerating thousands separators.

    "1,234" -> 1234, "1,234.50" -> 1234.50, " 12 " -> 12.
    Rejects anything else, including "abc", "12abc", "1e3", "NaN" and "1,2".
    """
    if value is None:
        raise ValidationError("value is required")
    stripped = str(value).strip()
    if not stripped:
        raise ValidationError("value is required")
    candidate = _THOUSANDS_SEPARATOR.sub("", stripped)
    if "," in candidate or "_" in candidate or "e" in candidate.lower():
        raise ValidationError(f"'{stripped}' is not a valid number")
    try:
        number = Decimal(candidate)
    except InvalidOperation:
        raise ValidationError(f"'{stripped}' is not a valid number")
    if not number.is_finite():
        raise ValidationError(f"'{stripped}' is not a valid number")
    return number


def is_whole_number(number: Decimal) -> bool:
    return number == number.to_integral_value()


def is_valid_http_url(value: str) -> bool:
    """Syntactic check only; reachability is the asset importer's concern."""
    if not value or any(ch.isspace() for ch in value.strip()):
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def split_list_cell(value: str) -> list[str]:
    """Comma-separated spreadsheet cell -> trimmed non-empty items."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]
