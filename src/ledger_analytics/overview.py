"""Rolling monthly overview for a partner or manager.

Per month: net revenue, write-off percentage, collections, net billings,
WIP and debtors balances, and their lockup days against the trailing
12 months of net revenue and net billings respectively.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from ledger_analytics.aggregator import PeriodAggregator
from ledger_analytics.categorizer import CategorizationStats, categorize_transaction
from ledger_analytics.models import (
    ZERO,
    Category,
    DataQualityReport,
    DebtorTransaction,
    EntityScope,
    Granularity,
    OpeningAggregate,
    Transaction,
)
from ledger_analytics.opening_balance import calculate_opening_balance
from ledger_analytics.periods import iter_period_keys, month_start
from ledger_analytics.running_balance import build_running_series
from ledger_analytics.trailing import compute_trailing_metrics

HUNDRED = Decimal("100")


@dataclass
class MonthlyMetrics:
    month: date
    net_revenue: Decimal = ZERO
    gross_time: Decimal = ZERO
    negative_adjustments: Decimal = ZERO
    provisions: Decimal = ZERO
    writeoff_percentage: Decimal = ZERO
    collections: Decimal = ZERO
    net_billings: Decimal = ZERO
    wip_balance: Decimal = ZERO
    trailing_revenue: Decimal = ZERO
    wip_lockup_days: Decimal = ZERO
    debtors_balance: Decimal = ZERO
    trailing_billings: Decimal = ZERO
    debtors_lockup_days: Decimal = ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month.strftime("%Y-%m"),
            "net_revenue": float(self.net_revenue),
            "gross_time": float(self.gross_time),
            "negative_adjustments": float(self.negative_adjustments),
            "provisions": float(self.provisions),
            "writeoff_percentage": round(float(self.writeoff_percentage), 2),
            "collections": float(self.collections),
            "net_billings": float(self.net_billings),
            "wip_balance": float(self.wip_balance),
            "trailing_12_revenue": float(self.trailing_revenue),
            "wip_lockup_days": round(float(self.wip_lockup_days), 2),
            "debtors_balance": float(self.debtors_balance),
            "trailing_12_billings": float(self.trailing_billings),
            "debtors_lockup_days": round(float(self.debtors_lockup_days), 2),
        }


@dataclass
class MonthlyOverview:
    scope: EntityScope
    start_date: date
    end_date: date
    monthly_metrics: list[MonthlyMetrics] = field(default_factory=list)
    data_quality: DataQualityReport = field(default_factory=DataQualityReport)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope.to_dict(),
            "filter_mode": self.scope.kind.value.upper(),
            "employee_code": self.scope.code,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "monthly_metrics": [m.to_dict() for m in self.monthly_metrics],
            "data_quality": self.data_quality.to_dict(),
        }


def writeoff_percentage(negative_adjustments: Decimal, provisions: Decimal, gross_time: Decimal) -> Decimal:
    """(|negative adjustments| + provisions) as a percentage of gross time."""
    if gross_time == 0:
        return ZERO
    return (abs(negative_adjustments) + provisions) / gross_time * HUNDRED


def build_monthly_overview(
    scope: EntityScope,
    start: date,
    end: date,
    wip_transactions: Iterable[Transaction],
    wip_opening: Iterable[OpeningAggregate],
    debtor_transactions: Iterable[DebtorTransaction],
    debtor_opening: Decimal,
    lookback_from: date,
    span: int = 12,
) -> MonthlyOverview:
    """Assemble the overview from rows fetched for [lookback_from, end].

    ``wip_opening`` and ``debtor_opening`` cover everything before ``start``;
    rows between ``lookback_from`` and ``start`` only feed trailing sums.
    """
    start = month_start(start)
    wip_rows = list(wip_transactions)
    debtor_rows = list(debtor_transactions)
    stats = CategorizationStats()

    # WIP: balances over the visible window, net revenue over the lookback too
    visible_wip = [txn for txn in wip_rows if txn.date >= start]
    aggregated = PeriodAggregator(Granularity.MONTH, partition=False).aggregate(visible_wip)
    stats.merge(aggregated.stats)
    opening = calculate_opening_balance(wip_opening, stats)
    wip_series = build_running_series(
        opening.balance, aggregated.overall, start, end, Granularity.MONTH
    )

    revenue_buckets = PeriodAggregator(Granularity.MONTH, partition=False).aggregate(
        txn for txn in wip_rows if txn.date < start
    )
    stats.merge(revenue_buckets.stats)
    net_revenue: dict[date, Decimal] = {
        key: bucket.totals.net_revenue for key, bucket in revenue_buckets.overall.items()
    }
    for key, bucket in aggregated.overall.items():
        net_revenue[key] = bucket.totals.net_revenue

    negative_adjustments: dict[date, Decimal] = defaultdict(lambda: ZERO)
    for txn in visible_wip:
        if txn.amount >= 0:
            continue
        if categorize_transaction(txn.t_type, txn.tran_type) is Category.ADJUSTMENT:
            negative_adjustments[month_start(txn.date)] += txn.amount

    # Debtors: receipts are stored negative; everything else is a billing
    debtor_change: dict[date, Decimal] = defaultdict(lambda: ZERO)
    net_billings: dict[date, Decimal] = defaultdict(lambda: ZERO)
    collections: dict[date, Decimal] = defaultdict(lambda: ZERO)
    for row in debtor_rows:
        key = month_start(row.date)
        if row.is_receipt:
            collections[key] -= row.amount
        else:
            net_billings[key] += row.amount
        if row.date >= start:
            debtor_change[key] += row.amount

    debtors_balances: dict[date, Decimal] = {}
    running = debtor_opening
    for key in iter_period_keys(start, end, Granularity.MONTH):
        running += debtor_change.get(key, ZERO)
        debtors_balances[key] = running

    wip_lockup = compute_trailing_metrics(
        {point.period_key: point.balance for point in wip_series},
        net_revenue,
        span=span,
        base_start=month_start(lookback_from),
    )
    debtors_lockup = compute_trailing_metrics(
        debtors_balances,
        net_billings,
        span=span,
        base_start=month_start(lookback_from),
    )

    months: list[MonthlyMetrics] = []
    for point, wip_metric, debtors_metric in zip(wip_series, wip_lockup, debtors_lockup):
        key = point.period_key
        negative = negative_adjustments.get(key, ZERO)
        months.append(
            MonthlyMetrics(
                month=key,
                net_revenue=point.totals.net_revenue,
                gross_time=point.totals.production,
                negative_adjustments=abs(negative),
                provisions=point.totals.provisions,
                writeoff_percentage=writeoff_percentage(
                    negative, point.totals.provisions, point.totals.production
                ),
                collections=collections.get(key, ZERO),
                net_billings=net_billings.get(key, ZERO),
                wip_balance=point.balance,
                trailing_revenue=wip_metric.trailing_sum,
                wip_lockup_days=wip_metric.ratio,
                debtors_balance=debtors_metric.balance,
                trailing_billings=debtors_metric.trailing_sum,
                debtors_lockup_days=debtors_metric.ratio,
            )
        )

    quality = DataQualityReport(
        uncategorized_count=stats.uncategorized_count,
        uncategorized_codes=dict(stats.uncategorized),
    )
    return MonthlyOverview(
        scope=scope,
        start_date=start,
        end_date=end,
        monthly_metrics=months,
        data_quality=quality,
    )
