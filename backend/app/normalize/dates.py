"""
Date parsing with an explicit fallback chain.

Precise formats beat generic parsing, generic parsing beats scanning free
text, and scanning beats "assume today". Every stage only emits real calendar
dates; an impossible candidate ("2024-02-31") falls through to the next stage.
"""

from __future__ import annotations

import calendar
import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from dateutil import parser as date_parser

from backend.app.normalize.text import fold

_ISO_EXACT = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_DMY_EXACT = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")

_ISO_IN_TEXT = re.compile(r"\b(20\d{2})-(\d{2})-(\d{2})\b")
_DMY_IN_TEXT = re.compile(r"\b(\d{2})/(\d{2})/(20\d{2})\b")
_YEAR_IN_TEXT = re.compile(r"\b(20\d{2})\b")

# Checked in this order; "setiembre" is the Rioplatense spelling.
SPANISH_MONTHS = (
    ("enero", 1),
    ("febrero", 2),
    ("marzo", 3),
    ("abril", 4),
    ("mayo", 5),
    ("junio", 6),
    ("julio", 7),
    ("agosto", 8),
    ("septiembre", 9),
    ("setiembre", 9),
    ("octubre", 10),
    ("noviembre", 11),
    ("diciembre", 12),
)

SPREADSHEET_EPOCH = date(1899, 12, 30)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _exact_iso(text: str) -> Optional[date]:
    match = _ISO_EXACT.match(text)
    if not match:
        return None
    return _safe_date(*(int(part) for part in match.groups()))


def _exact_dmy(text: str) -> Optional[date]:
    match = _DMY_EXACT.match(text)
    if not match:
        return None
    day, month, year = (int(part) for part in match.groups())
    return _safe_date(year, month, day)


def _generic(text: str, today: date) -> Optional[date]:
    if not text:
        return None
    try:
        parsed = date_parser.parse(text, default=datetime(today.year, today.month, today.day))
    except (ValueError, OverflowError):
        return None
    return parsed.date()


def _precise(value: Any, today: date) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    return _exact_iso(text) or _exact_dmy(text) or _generic(text, today)


def scan_text_for_date(text: str, *, today: Optional[date] = None) -> Optional[date]:
    today = today or utc_today()
    raw = text or ""

    for match in _ISO_IN_TEXT.finditer(raw):
        found = _safe_date(*(int(part) for part in match.groups()))
        if found:
            return found

    for match in _DMY_IN_TEXT.finditer(raw):
        day, month, year = (int(part) for part in match.groups())
        found = _safe_date(year, month, day)
        if found:
            return found

    folded = fold(raw)
    for name, month in SPANISH_MONTHS:
        if name in folded:
            year_match = _YEAR_IN_TEXT.search(folded)
            year = int(year_match.group(1)) if year_match else today.year
            return date(year, month, 1)

    return None


def date_from_text(text: str, *, today: Optional[date] = None) -> str:
    """Document-level date: scan free text, else today (UTC)."""
    today = today or utc_today()
    return (scan_text_for_date(text, today=today) or today).isoformat()


def parse_date(value: Any, *, today: Optional[date] = None) -> str:
    """Full chain. Always returns an ISO date string."""
    today = today or utc_today()
    found = _precise(value, today)
    if found is None and isinstance(value, str):
        found = scan_text_for_date(value, today=today)
    return (found or today).isoformat()


def parse_import_date(value: Any) -> Optional[str]:
    """
    Spreadsheet variant: no text scan and no "today" fallback, but numeric
    cells are read as spreadsheet serial days.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value <= 0:
            return None
        try:
            return (SPREADSHEET_EPOCH + timedelta(days=round(value))).isoformat()
        except OverflowError:
            return None
    found = _precise(value, utc_today())
    return found.isoformat() if found else None


def to_date(value: Any) -> Optional[date]:
    """Strict ISO reader: date/datetime objects or exact YYYY-MM-DD text."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return _exact_iso(value.strip())
    return None


def is_iso_date(value: Any) -> bool:
    return isinstance(value, str) and _exact_iso(value) is not None


def days_until(value: Any, *, today: Optional[date] = None) -> Optional[int]:
    """Whole UTC calendar days from today to `value` (negative when past)."""
    today = today or utc_today()
    target = to_date(value[:10] if isinstance(value, str) else value)
    if target is None:
        return None
    return (target - today).days


def add_month(value: date) -> date:
    """Same day next month, clamped to the month's last day (Jan 31 -> Feb 28/29)."""
    year = value.year + (1 if value.month == 12 else 0)
    month = 1 if value.month == 12 else value.month + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(value.day, last_day))


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"
