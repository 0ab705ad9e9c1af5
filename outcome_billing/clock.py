"""
Clock and billing period helpers.

Services take a clock so "the current month" is deterministic in tests.
All datetimes are naive UTC, matching what the database hands back.
"""

import calendar
from datetime import datetime, timezone


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock:
    """Always returns the same instant. Used in tests and replays."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def advance_to(self, instant: datetime) -> None:
        self.instant = instant


def month_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """Return [start, end) of the calendar month containing ``moment``."""
    start = datetime(moment.year, moment.month, 1)
    if moment.month == 12:
        end = datetime(moment.year + 1, 1, 1)
    else:
        end = datetime(moment.year, moment.month + 1, 1)
    return start, end


def previous_month_bounds(moment: datetime) -> tuple[datetime, datetime]:
    start, _ = month_bounds(moment)
    if start.month == 1:
        prev_start = datetime(start.year - 1, 12, 1)
    else:
        prev_start = datetime(start.year, start.month - 1, 1)
    return prev_start, start


def effective_billing_day(billing_day: int, moment: datetime) -> int:
    """Clamp a configured billing day to the length of ``moment``'s month.

    A plan billed on the 31st is billed on the 30th in April and on the 28th
    or 29th in February.
    """
    days_in_month = calendar.monthrange(moment.year, moment.month)[1]
    return max(1, min(billing_day, days_in_month))
