"""
Settlement periods.

A period is identified by its start date.  Periods are weekly: the
carry produced when closing a period lands on ``start + 7 days``.
"""

from datetime import date, datetime, timedelta

from settlement_kernel.exceptions import InvalidPeriodError

PERIOD_LENGTH = timedelta(days=7)


def parse_period_start(value: date | datetime | str) -> date:
    """Parse a period start given as a date or ``YYYY-MM-DD`` string.

    Raises:
        InvalidPeriodError: if the value is empty or not a calendar date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidPeriodError(str(value))
    text = value.strip()[:10]
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise InvalidPeriodError(value) from None


def next_period(period_start: date) -> date:
    """Destination period for carry-forward balances."""
    return period_start + PERIOD_LENGTH


def period_end(period_start: date) -> date:
    """Last day (inclusive) of the weekly period."""
    return period_start + PERIOD_LENGTH - timedelta(days=1)
