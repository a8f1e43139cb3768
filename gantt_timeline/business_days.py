"""Working-day arithmetic. Saturday and Sunday are the only non-working days."""
from __future__ import annotations

from datetime import date, timedelta

ISO_FORMAT = "%Y-%m-%d"
_ONE_DAY = timedelta(days=1)


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def next_business_day(day: date) -> date:
    """Return ``day`` itself when it is a weekday, else the following Monday."""
    while is_weekend(day):
        day += _ONE_DAY
    return day


def add_business_days(start: date, business_days: int) -> date:
    """Advance ``start`` by ``business_days`` working days.

    The walk moves one calendar day at a time and only weekday landings count,
    so ``add_business_days(friday, 1)`` is the next Monday and a request for
    zero days returns ``start`` untouched.
    """
    current = start
    remaining = business_days
    while remaining > 0:
        current += _ONE_DAY
        if not is_weekend(current):
            remaining -= 1
    return current


def count_business_days(start: date, end: date) -> int:
    """Count weekdays between ``start`` and ``end`` inclusive."""
    if start > end:
        return 0
    count = 0
    current = start
    while current <= end:
        if not is_weekend(current):
            count += 1
        current += _ONE_DAY
    return count


def parse_iso_date(text: str) -> date:
    try:
        return date.fromisoformat(text.strip())
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid date {text!r}: expected YYYY-MM-DD") from exc


def format_iso_date(day: date) -> str:
    return day.strftime(ISO_FORMAT)
