"""Billing period helpers -- YYYY-MM strings, local calendar days, UTC fetch bounds.

Pure functions, no I/O. A billing period is a calendar month in the
company's local timezone (America/Mexico_City unless configured otherwise).
"""

from __future__ import annotations

import calendar
import datetime
from typing import List, Optional, Tuple, Union

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from cafeteria_billing.core.errors import InvalidConfiguration, InvalidPeriod

DEFAULT_TIMEZONE = "America/Mexico_City"

MIN_YEAR = 2000
MAX_YEAR = 2099

TimeZoneLike = Union[str, datetime.tzinfo]


def resolve_timezone(tz: TimeZoneLike) -> datetime.tzinfo:
    """Return a tzinfo for an IANA name (or pass a tzinfo through)."""
    if isinstance(tz, datetime.tzinfo):
        return tz
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidConfiguration(f"Unknown timezone: {tz!r}")


def timezone_name(tz: TimeZoneLike) -> str:
    return tz if isinstance(tz, str) else str(getattr(tz, "key", tz))


def current_period(tz: TimeZoneLike = DEFAULT_TIMEZONE) -> str:
    """Return the current billing period as 'YYYY-MM' in local time."""
    now = datetime.datetime.now(resolve_timezone(tz))
    return now.strftime("%Y-%m")


def format_period(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def check_period(year: int, month: int) -> None:
    """Raise InvalidPeriod unless (year, month) is a sane billing month."""
    if not (MIN_YEAR <= year <= MAX_YEAR):
        raise InvalidPeriod(f"Year must be within {MIN_YEAR}..{MAX_YEAR}, got {year}")
    if not (1 <= month <= 12):
        raise InvalidPeriod(f"Month must be within 1..12, got {month}")


def parse_period(period: str) -> Tuple[int, int]:
    """Parse 'YYYY-MM' into (year, month). Raises InvalidPeriod."""
    if not isinstance(period, str) or len(period) != 7 or period[4] != "-":
        raise InvalidPeriod(f"Invalid period format: {period!r}. Use YYYY-MM.")
    try:
        year, month = int(period[:4]), int(period[5:7])
    except ValueError:
        raise InvalidPeriod(f"Invalid period format: {period!r}. Use YYYY-MM.")
    check_period(year, month)
    return year, month


def validate_period(period: str) -> bool:
    """Return True if period matches YYYY-MM format with valid ranges."""
    try:
        parse_period(period)
    except InvalidPeriod:
        return False
    return True


def parse_through(through: Optional[str], period: str) -> Optional[datetime.date]:
    """Parse a month-to-date cut-off 'YYYY-MM-DD'; it must fall inside `period`."""
    if not through:
        return None
    try:
        day = datetime.date.fromisoformat(through)
    except ValueError:
        raise InvalidPeriod(f"Invalid through date: {through!r}. Use YYYY-MM-DD.")
    if format_period(day.year, day.month) != period:
        raise InvalidPeriod(f"through={through} is outside period {period}.")
    return day


def is_valid_month(year: int, month: int) -> bool:
    """Calendar validity only (no business range); used by the pure engine."""
    return 1 <= month <= 12 and datetime.MINYEAR <= year <= datetime.MAXYEAR


def month_days(year: int, month: int) -> List[datetime.date]:
    """Every calendar day of the month, first to last inclusive."""
    last = calendar.monthrange(year, month)[1]
    return [datetime.date(year, month, d) for d in range(1, last + 1)]


def weekday_index(day: datetime.date) -> int:
    """Day of week with 0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def local_date(ts: datetime.datetime, tz: TimeZoneLike) -> datetime.date:
    """Calendar date of an instant in the given timezone. Naive instants are UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=datetime.timezone.utc)
    return ts.astimezone(resolve_timezone(tz)).date()


def period_bounds(
    period: str, tz: TimeZoneLike = DEFAULT_TIMEZONE,
) -> Tuple[datetime.datetime, datetime.datetime]:
    """Return (start, end) UTC instants for a local 'YYYY-MM' period.

    start = local midnight on the 1st of the month.
    end   = local midnight on the 1st of the next month (exclusive).

    Consumptions are stored in UTC; a night-shift meal at 23:30 local time is
    already the next UTC day, so fetching by these bounds keeps it in the
    month it was eaten.
    """
    year, month = parse_period(period)
    zone = resolve_timezone(tz)
    start = datetime.datetime(year, month, 1, tzinfo=zone)
    if month == 12:
        end = datetime.datetime(year + 1, 1, 1, tzinfo=zone)
    else:
        end = datetime.datetime(year, month + 1, 1, tzinfo=zone)
    utc = datetime.timezone.utc
    return start.astimezone(utc), end.astimezone(utc)


def previous_periods(period: str, count: int) -> List[str]:
    """The `count` periods ending at `period`, oldest first."""
    if count < 1:
        raise InvalidPeriod(f"count must be >= 1, got {count}")
    year, month = parse_period(period)
    out: List[str] = []
    for _ in range(count):
        out.append(format_period(year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    out.reverse()
    return out
