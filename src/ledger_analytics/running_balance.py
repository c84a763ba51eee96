"""Running balance series built from period buckets."""

from collections.abc import Mapping, Sequence
from datetime import date
from decimal import Decimal

from ledger_analytics.models import (
    CategoryTotals,
    Granularity,
    PeriodBucket,
    SeriesPoint,
    SeriesSummary,
)
from ledger_analytics.periods import iter_period_keys, month_start


def build_running_series(
    opening: Decimal,
    buckets: Mapping[date, PeriodBucket],
    start: date,
    end: date,
    granularity: Granularity = Granularity.DAY,
) -> list[SeriesPoint]:
    """Walk every period from start to end, carrying the cumulative balance.

    Periods without buckets still get a point (zero movement, previous
    balance) so the time axis has no gaps.
    """
    series: list[SeriesPoint] = []
    balance = opening
    for key in iter_period_keys(start, end, granularity):
        bucket = buckets.get(key)
        totals = bucket.totals.copy() if bucket else CategoryTotals()
        balance += totals.net_change
        series.append(SeriesPoint(period_key=key, totals=totals, balance=balance))
    return series


def summarize_series(series: Sequence[SeriesPoint], opening: Decimal) -> SeriesSummary:
    """Category totals across the series and the closing balance."""
    totals = CategoryTotals()
    for point in series:
        totals.merge(point.totals)
    return SeriesSummary(
        total_production=totals.production,
        total_adjustments=totals.adjustments,
        total_disbursements=totals.disbursements,
        total_billing=totals.billing,
        total_provisions=totals.provisions,
        current_balance=series[-1].balance if series else opening,
    )


def period_end_balances(series: Sequence[SeriesPoint]) -> dict[date, Decimal]:
    """Closing balance of each calendar month, keyed by month start."""
    balances: dict[date, Decimal] = {}
    for point in series:
        balances[month_start(point.period_key)] = point.balance
    return balances
