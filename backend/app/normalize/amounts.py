"""
Locale-ambiguous amount parsing.

Statements and spreadsheets arrive as "1.234,56", "1,234.56", "$ -50",
"1234,5" or plain numbers. The rule set is intentionally small:

- everything except digits, ",", "." and "-" is dropped
- both separators present: the rightmost one is the decimal point
- only "," present: it is the decimal point
- only "." present: it is the decimal point
"""

from __future__ import annotations

import math
import re
from typing import Any, Optional

_NON_NUMERIC = re.compile(r"[^\d,.\-]")


def _canonical(text: str) -> str:
    cleaned = _NON_NUMERIC.sub("", text)
    has_comma = "," in cleaned
    has_dot = "." in cleaned
    if has_comma and has_dot:
        if cleaned.rfind(",") > cleaned.rfind("."):
            return cleaned.replace(".", "").replace(",", ".", 1)
        return cleaned.replace(",", "")
    if has_comma:
        return cleaned.replace(",", ".", 1)
    return cleaned


def parse_amount(value: Any) -> Optional[float]:
    """
    Parse a number or numeric text. Zero is a valid result here.
    Returns None for anything that is not a finite number.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if not isinstance(value, str):
        return None

    candidate = _canonical(value)
    if not candidate:
        return None
    try:
        number = float(candidate)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_signed_amount(value: Any) -> Optional[float]:
    """
    Like parse_amount, but zero counts as "not an amount": zero-value rows in
    extracted statements are noise.
    """
    number = parse_amount(value)
    if number is None or number == 0:
        return None
    return number


def format_amount(value: float) -> str:
    return f"{value:.2f}"
