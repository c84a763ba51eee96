"""Trailing-window lockup ratios.

Lockup days = balance * 365 / (base metric summed over the trailing span).
The span includes the current period. A zero denominator gives a ratio of
zero rather than an error.
"""

from collections.abc import Mapping
from datetime import date
from decimal import Decimal

import structlog

from ledger_analytics.models import ZERO, Granularity, TrailingMetric
from ledger_analytics.periods import shift_period, truncate

logger = structlog.get_logger(__name__)

DEFAULT_SPAN = 12
DAYS_PER_YEAR = 365


def lookback_start(start: date, span: int = DEFAULT_SPAN, granularity: Granularity = Granularity.MONTH) -> date:
    """First period a caller must fetch so the earliest ratio has a full window."""
    return shift_period(truncate(start, granularity), -span, granularity)


def lockup_ratio(balance: Decimal, trailing_sum: Decimal, days: int = DAYS_PER_YEAR) -> Decimal:
    if trailing_sum == 0:
        return ZERO
    return balance * days / trailing_sum


def compute_trailing_metrics(
    balances: Mapping[date, Decimal],
    base: Mapping[date, Decimal],
    span: int = DEFAULT_SPAN,
    granularity: Granularity = Granularity.MONTH,
    days: int = DAYS_PER_YEAR,
    base_start: date | None = None,
) -> list[TrailingMetric]:
    """Compute a ratio for every period in ``balances``, in order.

    Args:
        balances: Balance at the end of each period, keyed by period key.
        base: Base metric per period (net revenue, net billings).
        span: Number of periods in the trailing window, current included.
        granularity: Period size of both mappings.
        days: Scale factor applied to the ratio.
        base_start: First period the base series was fetched from. Defaults
            to the earliest key in ``base``. Windows reaching before it are
            flagged as incomplete.
    """
    if span < 1:
        raise ValueError(f"Trailing span must be positive: {span}")

    covered_from = base_start
    if covered_from is None and base:
        covered_from = min(base)

    metrics: list[TrailingMetric] = []
    truncated: list[date] = []
    for key in sorted(balances):
        window_start = shift_period(key, -(span - 1), granularity)
        trailing_sum = ZERO
        cursor = window_start
        for _ in range(span):
            trailing_sum += base.get(cursor, ZERO)
            cursor = shift_period(cursor, 1, granularity)

        complete = covered_from is not None and covered_from <= window_start
        if not complete:
            truncated.append(key)

        metrics.append(
            TrailingMetric(
                period_key=key,
                balance=balances[key],
                trailing_sum=trailing_sum,
                ratio=lockup_ratio(balances[key], trailing_sum, days),
                window_complete=complete,
            )
        )

    if truncated:
        logger.warning(
            "trailing_window_truncated",
            periods=len(truncated),
            first=truncated[0].isoformat(),
            last=truncated[-1].isoformat(),
            base_start=covered_from.isoformat() if covered_from else None,
        )

    return metrics
