"""
Date parsing for portal values.

Handles:
- MM/DD/YYYY and MM/DD/YY text (optionally followed by a time)
- YYYY-MM-DD text
- Spreadsheet serial numbers (days since 1899-12-30), numeric input only

All results are midnight UTC so a portal's "01/03/2025" is the same day
no matter what timezone the scraper runs in.
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

MDY_PATTERN = re.compile(r'(\d{1,2})/(\d{1,2})/(\d{2,4})')
ISO_PATTERN = re.compile(r'^(\d{4})-(\d{2})-(\d{2})')

SERIAL_EPOCH = datetime(1899, 12, 30, tzinfo=timezone.utc)
MAX_SERIAL = 73000
MIN_YEAR = 1900
MAX_YEAR = 2100  # exclusive


def _build(year: int, month: int, day: int) -> Optional[datetime]:
    if year < MIN_YEAR or year >= MAX_YEAR:
        return None
    if month < 1 or month > 12 or day < 1 or day > 31:
        return None
    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        # 02/30, 04/31 and friends
        return None


def _from_serial(serial: float) -> Optional[datetime]:
    # NaN fails every comparison
    if not (0 < serial < MAX_SERIAL):
        return None
    result = SERIAL_EPOCH + timedelta(days=int(serial))
    if result.year < MIN_YEAR or result.year >= MAX_YEAR:
        return None
    return result


def parse_date(raw: Union[str, int, float, None]) -> Optional[datetime]:
    """
    Parse a portal date into a UTC datetime.

    Two-digit years below 50 land in the 2000s, the rest in the 1900s.
    Anything unparseable or out of range returns None.
    """
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, (int, float)):
        return _from_serial(raw)

    text = str(raw).strip()
    if not text:
        return None

    match = MDY_PATTERN.search(text)
    if match:
        month, day, year = (int(g) for g in match.groups())
        if year < 100:
            year += 2000 if year < 50 else 1900
        return _build(year, month, day)

    match = ISO_PATTERN.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        return _build(year, month, day)

    return None


def in_persistable_range(value: Optional[datetime]) -> Optional[datetime]:
    """Drop dates the database shouldn't see (years outside 1900-2099)."""
    if value is None:
        return None
    if value.year < MIN_YEAR or value.year >= MAX_YEAR:
        return None
    return value


def format_portal_date(value: Union[date, datetime]) -> str:
    """MM/DD/YYYY, the format every date-driven portal search box expects."""
    return value.strftime('%m/%d/%Y')
