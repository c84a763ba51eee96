"""Transaction categorization.

Maps a ledger row's type code (and optional sub-type) onto one of the five
categories. The mapping is pure and deterministic so that every report built
from the same rows agrees on its totals.

Fallback order:
    1. primary type code
    2. sub-type code
    3. fee variants (either code starting with ``FEE``)
    4. uncategorized (``None``): the row is left out of every bucket
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Protocol

import structlog

from ledger_analytics.models import Category

logger = structlog.get_logger(__name__)


CATEGORY_CODES: dict[str, Category] = {
    "T": Category.TIME,
    "TIME": Category.TIME,
    "ADJ": Category.ADJUSTMENT,
    "ADJUSTMENT": Category.ADJUSTMENT,
    "D": Category.DISBURSEMENT,
    "DISB": Category.DISBURSEMENT,
    "DISBURSEMENT": Category.DISBURSEMENT,
    "F": Category.FEE,
    "FEE": Category.FEE,
    "P": Category.PROVISION,
    "PROVISION": Category.PROVISION,
}

FEE_PREFIX = "FEE"


class Categorizable(Protocol):
    t_type: str
    tran_type: str | None


def _normalize(code: str | None) -> str:
    if not code:
        return ""
    return code.strip().upper()


def categorize_transaction(t_type: str | None, tran_type: str | None = None) -> Category | None:
    """Return the category for a type code pair, or None if unrecognized."""
    primary = _normalize(t_type)
    secondary = _normalize(tran_type)

    category = CATEGORY_CODES.get(primary)
    if category is not None:
        return category

    category = CATEGORY_CODES.get(secondary)
    if category is not None:
        return category

    if primary.startswith(FEE_PREFIX) or secondary.startswith(FEE_PREFIX):
        return Category.FEE

    return None


@dataclass
class CategorizationStats:
    """Counts rows that fell through every categorization rule."""

    uncategorized: Counter[str] = field(default_factory=Counter)

    @property
    def uncategorized_count(self) -> int:
        return sum(self.uncategorized.values())

    def categorize(self, row: Categorizable) -> Category | None:
        category = categorize_transaction(row.t_type, row.tran_type)
        if category is None:
            code = _normalize(row.t_type) or "<blank>"
            if row.tran_type:
                code = f"{code}/{_normalize(row.tran_type)}"
            self.uncategorized[code] += 1
        return category

    def merge(self, other: "CategorizationStats") -> None:
        self.uncategorized.update(other.uncategorized)

    def log_warnings(self, **context: object) -> None:
        """Emit a data quality warning when anything was dropped."""
        if not self.uncategorized:
            return
        logger.warning(
            "uncategorized_transactions",
            count=self.uncategorized_count,
            codes=dict(self.uncategorized),
            **context,
        )
