"""
Date normalization for spreadsheet cells and user input
"""
from __future__ import annotations
import calendar
import math
import re
from datetime import date, datetime, timedelta
from typing import Any, Optional

from utils import normalize_digits

# Spreadsheet serial day 0 (Excel/Lotus convention, absorbs the 1900 leap-year bug)
SPREADSHEET_EPOCH = date(1899, 12, 30)
MIN_YEAR = 1900
MAX_YEAR = 2100
TWO_DIGIT_YEAR_PIVOT = 50  # yy < 50 -> 20yy, else 19yy

# Sunday first, matching date.weekday() shifted by one
ARABIC_WEEKDAYS = ["الأحد", "الاثنين", "الثلاثاء", "الأربعاء", "الخميس", "الجمعة", "السبت"]

_YEAR_FIRST_RE = re.compile(r"^(\d{4})([-/.])(\d{1,2})\2(\d{1,2})(?:[T\s].*)?$")
_DAY_FIRST_RE = re.compile(r"^(\d{1,2})([-/.])(\d{1,2})\2(\d{4}|\d{2})(?:[T\s].*)?$")


def _valid(year: int, month: int, day: int) -> Optional[str]:
    if not (MIN_YEAR <= year <= MAX_YEAR) or not (1 <= month <= 12):
        return None
    if not (1 <= day <= calendar.monthrange(year, month)[1]):
        return None
    return f"{year:04d}-{month:02d}-{day:02d}"


def _from_serial(serial: float) -> Optional[str]:
    if not math.isfinite(serial):
        return None
    try:
        d = SPREADSHEET_EPOCH + timedelta(days=math.floor(serial))
    except OverflowError:
        return None
    return _valid(d.year, d.month, d.day)


def _from_string(s: str) -> Optional[str]:
    s = normalize_digits(s).strip()
    if not s:
        return None

    m = _YEAR_FIRST_RE.match(s)
    if m:
        return _valid(int(m.group(1)), int(m.group(3)), int(m.group(4)))

    m = _DAY_FIRST_RE.match(s)
    if m:
        first, second, year_s = int(m.group(1)), int(m.group(3)), m.group(4)
        year = int(year_s)
        if len(year_s) == 2:
            year += 2000 if year < TWO_DIGIT_YEAR_PIVOT else 1900
        # day-first unless only the second component can be a day
        if second > 12 and first <= 12:
            day, month = second, first
        else:
            day, month = first, second
        return _valid(year, month, day)

    return None


def normalize_date(value: Any) -> Optional[str]:
    """
    Convert a date-like cell value to an ISO YYYY-MM-DD string.

    Accepts date/datetime objects (local calendar fields), spreadsheet serial
    numbers and strings in year-first or day-first layouts, with Arabic-Indic
    digits allowed. Returns None when the value cannot be read as a valid date.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return _valid(value.year, value.month, value.day)
    if isinstance(value, date):
        return _valid(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        return _from_serial(float(value))
    return _from_string(str(value))


def day_of_week(iso_date: str) -> str:
    """Arabic weekday name for a YYYY-MM-DD date ("" if the date is invalid)"""
    try:
        d = datetime.strptime(str(iso_date).strip(), "%Y-%m-%d").date()
    except ValueError:
        return ""
    return ARABIC_WEEKDAYS[(d.weekday() + 1) % 7]
