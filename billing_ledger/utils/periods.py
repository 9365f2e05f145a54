"""Billing period and fiscal year utilities"""

import calendar
import re
from datetime import date, datetime, timedelta, timezone

PERIOD_KEY_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def parse_period_key(period_key: str) -> tuple[int, int]:
    """Split a "YYYY-MM" period key into (year, month)."""
    match = PERIOD_KEY_PATTERN.match(period_key or "")
    if not match:
        raise ValueError(f"Invalid period key: {period_key!r} (expected YYYY-MM)")
    return int(match.group(1)), int(match.group(2))


def make_period_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def period_label(period_key: str) -> str:
    """Display name, e.g. "2026-01" -> "January 2026"."""
    year, month = parse_period_key(period_key)
    return f"{calendar.month_name[month]} {year}"


def due_date_for_period(period_key: str, due_day_of_month: int) -> date:
    """Due date of a period; the day is clamped to the month length."""
    year, month = parse_period_key(period_key)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(max(due_day_of_month, 1), last_day))


def fiscal_year(on: date, fiscal_year_start_month: int) -> int:
    """
    Fiscal year containing a date, named by the calendar year it ends in.

    A July start puts 2026-07-01 in fiscal year 2027; a January start is the
    calendar year.
    """
    if not 1 <= fiscal_year_start_month <= 12:
        raise ValueError(f"Invalid fiscal year start month: {fiscal_year_start_month}")
    if fiscal_year_start_month == 1:
        return on.year
    return on.year + 1 if on.month >= fiscal_year_start_month else on.year


def grace_period_end(due: date, grace_days: int) -> date:
    return due + timedelta(days=grace_days)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
