"""
Month arithmetic.

Months are "YYYY-MM" strings everywhere in the engine; they sort
lexicographically in calendar order, which the range checks rely on.
"""

import calendar
from datetime import date
from typing import Iterator

from dateutil.relativedelta import relativedelta


def month_of(day: date) -> str:
    """The "YYYY-MM" month a date falls in."""
    return day.strftime("%Y-%m")


def month_start(month: str) -> date:
    year, mon = month.split("-")
    return date(int(year), int(mon), 1)


def add_months(month: str, count: int) -> str:
    """Shift a month string by ``count`` months (negative goes back)."""
    return month_of(month_start(month) + relativedelta(months=count))


def previous_month(month: str) -> str:
    return add_months(month, -1)


def next_month(month: str) -> str:
    return add_months(month, 1)


def months_in_range(start_month: str, end_month: str) -> Iterator[str]:
    """Yield every month from start to end, both inclusive."""
    current = start_month
    while current <= end_month:
        yield current
        current = next_month(current)


def clamp_day(month: str, day: int) -> date:
    """
    The given day of a month, clamped to the month's last day.

    Day 31 in February gives the 28th (or 29th in leap years).
    """
    first = month_start(month)
    last_day = calendar.monthrange(first.year, first.month)[1]
    return first.replace(day=min(day, last_day))


def invoice_month(spend_date: date, closing_day: int) -> str:
    """
    Reference month of a card purchase.

    Purchases before the closing day land on that month's invoice;
    purchases on or after it roll to the next month (December rolls
    into January of the following year).
    """
    if spend_date.day >= closing_day:
        return next_month(month_of(spend_date))
    return month_of(spend_date)


def shift_date(day: date, months: int) -> date:
    """Same day ``months`` later, clamped to month end."""
    return day + relativedelta(months=months)
