"""
Locale-tolerant numeric cell parsing.

Handles thousands separators, decimal commas, currency symbols,
parentheses-as-negative and stray noise characters. Blank cells are
reported as empty (distinct from a parsed zero); unparseable text is
reported as invalid.
"""

import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any

from tbimport.core.models import ParsedNumber, ZERO

_WHITESPACE = re.compile(r"[\s\u00a0\u2007\u202f]+")
# Currency words with their abbreviation dot ("Rs.", "Dhs.")
_CURRENCY_WORD = re.compile(r"[^\W\d_]+\.?")
_NOISE = re.compile(r"[^0-9.,()\-]")
_STRIP_FINAL = re.compile(r"[^0-9.\-]")

EMPTY = ParsedNumber(ZERO, is_valid=True, is_empty=True)
INVALID = ParsedNumber(ZERO, is_valid=False, is_empty=False)


def parse_number(cell: Any) -> ParsedNumber:
    """
    Parse a spreadsheet cell into a signed Decimal.

    Examples:
        "1,234.50"  -> 1234.50
        "1.234,50"  -> 1234.50
        "(500)"     -> -500
        "AED 1,000" -> 1000
        "" / None   -> 0 (empty)
    """
    if cell is None or isinstance(cell, bool):
        return EMPTY if cell is None else INVALID

    if isinstance(cell, Decimal):
        return ParsedNumber(cell) if cell.is_finite() else INVALID

    if isinstance(cell, (int, float)):
        if isinstance(cell, float):
            # pandas reads blank cells as NaN
            if math.isnan(cell):
                return EMPTY
            if math.isinf(cell):
                return INVALID
        return ParsedNumber(Decimal(str(cell)))

    text = _WHITESPACE.sub("", str(cell))
    if not text:
        return EMPTY

    # Currency letters/symbols and other noise
    text = _CURRENCY_WORD.sub("", text)
    text = _NOISE.sub("", text)
    if not text:
        return INVALID

    parenthesized = "(" in text and ")" in text and text.index("(") < text.rindex(")")
    text = text.replace("(", "").replace(")", "")

    if "-" in text.strip("-"):
        return INVALID
    negative = text.startswith("-") or text.endswith("-")
    text = text.replace("-", "")

    text = _normalize_separators(text)
    text = _STRIP_FINAL.sub("", text)

    if not text or text == "." or text.count(".") > 1:
        return INVALID

    try:
        value = Decimal(text)
    except InvalidOperation:
        return INVALID

    if parenthesized:
        value = -abs(value)
    elif negative:
        value = -value
    return ParsedNumber(value)


def _normalize_separators(text: str) -> str:
    """Resolve ',' and '.' into a single '.' decimal marker."""
    has_comma = "," in text
    has_dot = "." in text

    if has_comma and has_dot:
        # Rightmost separator is the decimal marker
        if text.rfind(",") > text.rfind("."):
            return text.replace(".", "").replace(",", ".")
        return text.replace(",", "")

    if has_comma:
        if _is_decimal_group_pattern(text.split(",")):
            head, _, tail = text.rpartition(",")
            return head.replace(",", "") + "." + tail
        return text.replace(",", "")

    if has_dot and text.count(".") > 1:
        if _is_decimal_group_pattern(text.split(".")):
            head, _, tail = text.rpartition(".")
            return head.replace(".", "") + "." + tail
        return text.replace(".", "")

    return text


def _is_decimal_group_pattern(groups: list) -> bool:
    """
    True when the last separator is a decimal marker.

    The trailing group must hold 1-2 digits and, when there are several
    separators, every group between the first and the last must be a
    genuine 3-digit thousands group.
    """
    tail = groups[-1]
    if not (1 <= len(tail) <= 2 and tail.isdigit()):
        return False
    if len(groups) == 2:
        return True
    return all(len(group) == 3 and group.isdigit() for group in groups[1:-1])


def parse_amount(cell: Any) -> Decimal:
    """Parse a cell and return its value (0 for empty or invalid)."""
    return parse_number(cell).value


def is_numeric_cell(cell: Any) -> bool:
    """True for non-empty cells that are a clean number (no letters)."""
    if cell is None or isinstance(cell, bool):
        return False
    if isinstance(cell, (int, float, Decimal)):
        parsed = parse_number(cell)
        return parsed.is_valid and not parsed.is_empty
    text = str(cell).strip()
    if not text or re.search(r"[A-Za-z]", text) or not re.search(r"\d", text):
        return False
    parsed = parse_number(text)
    return parsed.is_valid and not parsed.is_empty
