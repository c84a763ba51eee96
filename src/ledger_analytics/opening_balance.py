"""Opening balance: the running-balance seed for a reporting window."""

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Protocol

from ledger_analytics.categorizer import CategorizationStats
from ledger_analytics.models import UNKNOWN_PARTITION, OpeningBalance, ServiceLineMapping


class LedgerRow(Protocol):
    t_type: str
    tran_type: str | None
    amount: Decimal
    service_line: str | None


def calculate_opening_balance(
    rows: Iterable[LedgerRow],
    stats: CategorizationStats | None = None,
) -> OpeningBalance:
    """Reduce every row dated before the window start into one balance.

    Accepts individual transactions or rows already summed by the store;
    either way the input is consumed in a single pass.
    """
    stats = stats if stats is not None else CategorizationStats()
    opening = OpeningBalance()
    for row in rows:
        category = stats.categorize(row)
        if category is None:
            continue
        opening.totals.add(category, row.amount)
    return opening


def master_code_for(
    service_line: str | None, mappings: Mapping[str, ServiceLineMapping]
) -> str:
    """Master service line for a row, or UNKNOWN when the mapping has no entry."""
    if service_line is None:
        return UNKNOWN_PARTITION
    mapping = mappings.get(service_line)
    return mapping.master_code if mapping else UNKNOWN_PARTITION


def calculate_partition_openings(
    rows: Iterable[LedgerRow],
    mappings: Mapping[str, ServiceLineMapping],
    stats: CategorizationStats | None = None,
) -> tuple[OpeningBalance, dict[str, OpeningBalance]]:
    """Single pass producing the overall opening balance and one per partition."""
    stats = stats if stats is not None else CategorizationStats()
    overall = OpeningBalance()
    by_partition: dict[str, OpeningBalance] = {}
    for row in rows:
        category = stats.categorize(row)
        if category is None:
            continue
        overall.totals.add(category, row.amount)
        code = master_code_for(row.service_line, mappings)
        by_partition.setdefault(code, OpeningBalance()).totals.add(category, row.amount)
    return overall, by_partition
