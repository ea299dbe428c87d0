"""Pure normalization helpers for broker export cells.

NinjaTrader exports on European locales use decimal commas and prefix money
with a currency sign, e.g. "5987,25" or "-$ 200,00". These helpers turn cell
text into Python values and raise ValueError on anything they cannot read.
"""

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

_CURRENCY_SIGNS = "$€£"
_NUMBER_RE = re.compile(r"^\d+(\.\d+)?$")
_TIMESTAMP_RE = re.compile(
    r"^(\d{1,2})/(\d{1,2})/(\d{4})\s+(\d{1,2}):(\d{2})(?::(\d{2}))?$"
)
_CONTRACT_MONTH_RE = re.compile(
    r"^([A-Z0-9]+)\s+((JAN|FEB|MAR|APR|MAY|JUN|JUL|AUG|SEP|OCT|NOV|DEC)\d{2}|\d{2}-\d{2})"
)

_LONG_VALUES = {"LONG", "BUY", "1"}
_SHORT_VALUES = {"SHORT", "SELL", "-1"}


def parse_decimal(value: Optional[str]) -> Optional[Decimal]:
    """Parse a locale-formatted number or money cell.

    Handles decimal commas ("6387,50"), currency prefixes ("$ 262,50"),
    negative money in either position ("-$ 200,00", "$ -200,00"), accounting
    parentheses ("($ 200,00)") and thousands separators ("1.234,50" or
    "1,234.50"; when both separators appear the last one is the decimal mark).

    Args:
        value: Raw cell text.

    Returns:
        Decimal value, or None for a blank cell.

    Raises:
        ValueError: If the cell is not blank and not a number.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    for sign in _CURRENCY_SIGNS:
        text = text.replace(sign, "")
    text = re.sub(r"\s+", "", text)
    if text in ("", "-"):
        return None

    if text.startswith("-"):
        negative = not negative
        text = text[1:]
    elif text.startswith("+"):
        text = text[1:]

    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        if text.count(",") > 1:
            raise ValueError(f"Not a number: '{value}'")
        text = text.replace(",", ".")

    if not _NUMBER_RE.match(text):
        raise ValueError(f"Not a number: '{value}'")

    try:
        number = Decimal(text)
    except InvalidOperation as e:
        raise ValueError(f"Not a number: '{value}'") from e
    return -number if negative else number


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a NinjaTrader timestamp.

    The export format is M/D/YYYY H:MM:SS. When the first component is larger
    than 12 it can only be a day, so the value is read as D/M/YYYY instead.
    datetime objects (from spreadsheet cells) and ISO strings are accepted too.

    Returns:
        Naive datetime, or None for a blank cell.

    Raises:
        ValueError: If the cell is not blank and not a timestamp.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    text = str(value).strip()
    if not text:
        return None

    match = _TIMESTAMP_RE.match(text)
    if match:
        first, second, year, hour, minute, second_part = match.groups()
        month, day = int(first), int(second)
        if month > 12:
            month, day = day, month
        try:
            return datetime(
                int(year), month, day, int(hour), int(minute), int(second_part or 0)
            )
        except ValueError as e:
            raise ValueError(f"Not a valid timestamp: '{value}'") from e

    try:
        return datetime.fromisoformat(text).replace(tzinfo=None)
    except ValueError as e:
        raise ValueError(f"Not a valid timestamp: '{value}'") from e


def parse_direction(value: Optional[str]) -> str:
    """Normalize a market position cell to 'LONG' or 'SHORT'.

    Raises:
        ValueError: If the direction cannot be determined.
    """
    text = (value or "").strip().upper()
    if text in _LONG_VALUES:
        return "LONG"
    if text in _SHORT_VALUES:
        return "SHORT"
    raise ValueError(f"Unable to determine trade direction from '{value or ''}'")


def extract_symbol(instrument: Optional[str]) -> str:
    """Extract the base symbol from an instrument name.

    Examples: "ES SEP25" -> "ES", "NQ 03-25" -> "NQ", "mes" -> "MES".
    Returns an empty string for a blank instrument.
    """
    text = (instrument or "").strip().upper()
    if not text:
        return ""
    match = _CONTRACT_MONTH_RE.match(text)
    if match:
        return match.group(1)
    return re.split(r"[\s\-_]", text)[0]
