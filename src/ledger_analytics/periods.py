"""Period keys, month arithmetic and the fiscal calendar.

A period key is the first date of the period it stands for: the day itself
for daily series, the first of the month for monthly series.
"""

from collections.abc import Iterator
from datetime import date, timedelta

from ledger_analytics.models import Granularity

DEFAULT_FISCAL_YEAR_START_MONTH = 9


def month_start(value: date) -> date:
    return value.replace(day=1)


def month_end(value: date) -> date:
    next_month = value.replace(day=28) + timedelta(days=4)
    return next_month.replace(day=1) - timedelta(days=1)


def add_months(value: date, months: int) -> date:
    """Shift a date by whole months, clamping the day to the target month."""
    year = value.year + (value.month - 1 + months) // 12
    month = (value.month - 1 + months) % 12 + 1
    day = min(value.day, month_end(date(year, month, 1)).day)
    return date(year, month, day)


def truncate(value: date, granularity: Granularity) -> date:
    """Return the period key containing a date."""
    if granularity is Granularity.MONTH:
        return month_start(value)
    return value


def shift_period(key: date, periods: int, granularity: Granularity) -> date:
    if granularity is Granularity.MONTH:
        return add_months(month_start(key), periods)
    return key + timedelta(days=periods)


def iter_period_keys(start: date, end: date, granularity: Granularity) -> Iterator[date]:
    """Yield every period key from start to end inclusive, in order."""
    cursor = truncate(start, granularity)
    last = truncate(end, granularity)
    while cursor <= last:
        yield cursor
        cursor = shift_period(cursor, 1, granularity)


def count_periods(start: date, end: date, granularity: Granularity) -> int:
    first = truncate(start, granularity)
    last = truncate(end, granularity)
    if last < first:
        return 0
    if granularity is Granularity.MONTH:
        return (last.year - first.year) * 12 + (last.month - first.month) + 1
    return (last - first).days + 1


# === Fiscal calendar ===


def fiscal_year(value: date, start_month: int = DEFAULT_FISCAL_YEAR_START_MONTH) -> int:
    """Fiscal year a date falls in, named after the calendar year it ends in.

    With a September start, 2023-09-01 and 2024-08-31 are both FY2024.
    """
    if start_month == 1:
        return value.year
    return value.year + 1 if value.month >= start_month else value.year


def fiscal_month(value: date, start_month: int = DEFAULT_FISCAL_YEAR_START_MONTH) -> int:
    """Month number (1-12) within the fiscal year."""
    return (value.month - start_month) % 12 + 1


def fiscal_quarter(value: date, start_month: int = DEFAULT_FISCAL_YEAR_START_MONTH) -> int:
    return (fiscal_month(value, start_month) - 1) // 3 + 1


def _fiscal_month_start(fy: int, month: int, start_month: int) -> date:
    first = date(fy - 1 if start_month != 1 else fy, start_month, 1)
    return add_months(first, month - 1)


def fiscal_year_range(
    fy: int, start_month: int = DEFAULT_FISCAL_YEAR_START_MONTH
) -> tuple[date, date]:
    start = _fiscal_month_start(fy, 1, start_month)
    return start, month_end(add_months(start, 11))


def fiscal_quarter_range(
    fy: int, quarter: int, start_month: int = DEFAULT_FISCAL_YEAR_START_MONTH
) -> tuple[date, date]:
    if quarter < 1 or quarter > 4:
        raise ValueError(f"Invalid fiscal quarter: {quarter}")
    start = _fiscal_month_start(fy, (quarter - 1) * 3 + 1, start_month)
    return start, month_end(add_months(start, 2))


def fiscal_month_range(
    fy: int, month: int, start_month: int = DEFAULT_FISCAL_YEAR_START_MONTH
) -> tuple[date, date]:
    if month < 1 or month > 12:
        raise ValueError(f"Invalid fiscal month: {month}")
    start = _fiscal_month_start(fy, month, start_month)
    return start, month_end(start)
