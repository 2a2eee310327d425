"""Date parsing for ledger and reference-data rows.

Ledger dates arrive as free text typed by people. Accepted shapes, tried in
order:

1. ``d/M/yyyy`` and ``dd/MM/yyyy`` (day first)
2. ``d/M/yy`` (two-digit years are 2000-based)
3. ``yyyy-MM-dd``, optionally followed by a time component
4. ``MM/dd/yyyy``, only when the first field cannot be a day
5. ``dd-MM-yyyy``
6. ``dd.MM.yyyy``

Years outside ``[MIN_YEAR, MAX_YEAR]`` are rejected as well; a date like
``01/01/1900`` is a typo rather than an old disbursement.
"""

from __future__ import annotations

import re
from datetime import date, datetime

from .errors import DateParseError

MIN_YEAR = 2020
MAX_YEAR = 2030

_SLASH_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})$")
_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?$")
_DASH_RE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_DOT_RE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")


def _build(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _parse_slash(m: re.Match[str]) -> date | None:
    first, second, year_s = int(m.group(1)), int(m.group(2)), m.group(3)
    year = int(year_s) + 2000 if len(year_s) == 2 else int(year_s)
    # Day first; month first only when the day-first reading is impossible.
    parsed = _build(year, second, first)
    if parsed is None and len(year_s) == 4 and first <= 12:
        parsed = _build(year, first, second)
    return parsed


def parse_date(value: str | date | datetime | None) -> date:
    """Parse ``value`` into a calendar date.

    Raises
    ------
    DateParseError
        When the value is empty, matches no accepted format, or its year is
        outside the accepted bounds.
    """

    if isinstance(value, datetime):
        parsed: date | None = value.date()
    elif isinstance(value, date):
        parsed = value
    else:
        s = (value or "").strip()
        if not s:
            raise DateParseError(s, "empty")
        parsed = None
        if m := _SLASH_RE.match(s):
            parsed = _parse_slash(m)
        elif m := _ISO_RE.match(s):
            parsed = _build(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        elif m := _DASH_RE.match(s):
            parsed = _build(int(m.group(3)), int(m.group(2)), int(m.group(1)))
        elif m := _DOT_RE.match(s):
            parsed = _build(int(m.group(3)), int(m.group(2)), int(m.group(1)))
        if parsed is None:
            raise DateParseError(s, "no accepted format matched")
        value = s

    if not (MIN_YEAR <= parsed.year <= MAX_YEAR):
        raise DateParseError(str(value), f"year {parsed.year} outside {MIN_YEAR}-{MAX_YEAR}")
    return parsed


def try_parse_date(value: str | date | datetime | None) -> date | None:
    """Like :func:`parse_date` but returns ``None`` instead of raising."""

    try:
        return parse_date(value)
    except DateParseError:
        return None


__all__ = ["MIN_YEAR", "MAX_YEAR", "parse_date", "try_parse_date"]
