"""Period aggregation of categorized ledger rows.

Two failure modes are handled differently:

- a row whose type code matches no category is dropped from every bucket
  and counted in ``CategorizationStats``;
- a row whose service line has no master mapping is kept, under the
  ``UNKNOWN`` partition, and counted in ``unmapped``.
"""

from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date

import structlog

from ledger_analytics.categorizer import CategorizationStats
from ledger_analytics.models import (
    UNKNOWN_PARTITION,
    CategoryTotals,
    Granularity,
    PeriodBucket,
    ServiceLineMapping,
    Transaction,
)
from ledger_analytics.periods import truncate

logger = structlog.get_logger(__name__)


@dataclass
class AggregationResult:
    """Buckets for the overall series and for each partition."""

    overall: dict[date, PeriodBucket] = field(default_factory=dict)
    by_partition: dict[str, dict[date, PeriodBucket]] = field(default_factory=dict)
    stats: CategorizationStats = field(default_factory=CategorizationStats)
    unmapped: Counter[str] = field(default_factory=Counter)
    transaction_count: int = 0

    def partition_totals(self, partition: str) -> CategoryTotals:
        totals = CategoryTotals()
        for bucket in self.by_partition.get(partition, {}).values():
            totals.merge(bucket.totals)
        return totals

    def overall_totals(self) -> CategoryTotals:
        totals = CategoryTotals()
        for bucket in self.overall.values():
            totals.merge(bucket.totals)
        return totals


class PeriodAggregator:
    """Groups transactions by truncated date and master service line."""

    def __init__(
        self,
        granularity: Granularity = Granularity.DAY,
        mappings: Mapping[str, ServiceLineMapping] | None = None,
        partition: bool = True,
    ):
        self._granularity = granularity
        self._mappings = mappings or {}
        self._partition = partition

    def _partition_key(self, txn: Transaction, result: AggregationResult) -> str:
        if txn.service_line is None:
            result.unmapped["<none>"] += 1
            return UNKNOWN_PARTITION
        mapping = self._mappings.get(txn.service_line)
        if mapping is None:
            result.unmapped[txn.service_line] += 1
            return UNKNOWN_PARTITION
        return mapping.master_code

    def aggregate(self, transactions: Iterable[Transaction]) -> AggregationResult:
        result = AggregationResult()

        for txn in transactions:
            result.transaction_count += 1
            category = result.stats.categorize(txn)
            if category is None:
                continue

            key = truncate(txn.date, self._granularity)

            # Overall accumulates straight from the row, never from partitions
            overall = result.overall.get(key)
            if overall is None:
                overall = result.overall[key] = PeriodBucket(period_key=key)
            overall.totals.add(category, txn.amount)

            if not self._partition:
                continue

            code = self._partition_key(txn, result)
            buckets = result.by_partition.setdefault(code, {})
            bucket = buckets.get(key)
            if bucket is None:
                bucket = buckets[key] = PeriodBucket(period_key=key, partition_key=code)
            bucket.totals.add(category, txn.amount)

        if result.unmapped:
            logger.info(
                "unmapped_service_lines",
                count=sum(result.unmapped.values()),
                service_lines=dict(result.unmapped),
            )

        return result
