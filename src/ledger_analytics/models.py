"""Record types flowing through the aggregation pipeline.

Ledger rows are read-only inputs; everything else is computed per request
and never mutated after it is returned to a caller.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

UNKNOWN_PARTITION = "UNKNOWN"

ZERO = Decimal("0")


class Category(str, Enum):
    """Mutually exclusive transaction categories."""

    TIME = "time"
    ADJUSTMENT = "adjustment"
    DISBURSEMENT = "disbursement"
    FEE = "fee"
    PROVISION = "provision"


class Granularity(str, Enum):
    """Calendar period a series is bucketed by."""

    DAY = "day"
    MONTH = "month"


class Resolution(str, Enum):
    """Chart resolution requested by the caller."""

    HIGH = "high"
    STANDARD = "standard"
    LOW = "low"


class ScopeKind(str, Enum):
    """Which ledger column an entity scope filters on."""

    PARTNER = "partner"
    MANAGER = "manager"
    CLIENT = "client"
    GROUP = "group"


@dataclass(frozen=True)
class Transaction:
    """A WIP ledger row."""

    date: date
    amount: Decimal
    t_type: str
    tran_type: str | None = None
    service_line: str | None = None
    entity_id: str | None = None


@dataclass(frozen=True)
class OpeningAggregate:
    """Ledger rows before a window start, pre-summed by the store."""

    t_type: str
    amount: Decimal
    tran_type: str | None = None
    service_line: str | None = None


@dataclass(frozen=True)
class DebtorTransaction:
    """A debtors ledger row (invoice, credit note, adjustment or receipt)."""

    date: date
    amount: Decimal
    entry_type: str | None = None
    service_line: str | None = None

    @property
    def is_receipt(self) -> bool:
        return self.entry_type == "Receipt"


@dataclass(frozen=True)
class ServiceLineMapping:
    """Service line to master service line lookup entry."""

    service_line: str
    master_code: str
    master_name: str = ""


@dataclass(frozen=True)
class PartitionInfo:
    """Display metadata for a partition."""

    code: str
    name: str

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "name": self.name}


@dataclass(frozen=True)
class Principal:
    """The caller asking for analytics."""

    user_id: str
    email: str = ""


@dataclass(frozen=True)
class EntityScope:
    """The slice of the ledger a caller may see."""

    kind: ScopeKind
    code: str
    display_name: str | None = None

    @property
    def cache_token(self) -> str:
        return f"{self.kind.value}:{self.code}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "display_name": self.display_name,
        }


@dataclass
class CategoryTotals:
    """Summed amounts per category."""

    production: Decimal = ZERO
    adjustments: Decimal = ZERO
    disbursements: Decimal = ZERO
    billing: Decimal = ZERO
    provisions: Decimal = ZERO

    def add(self, category: Category, amount: Decimal) -> None:
        """Add an amount to the field a category feeds."""
        if category is Category.TIME:
            self.production += amount
        elif category is Category.ADJUSTMENT:
            self.adjustments += amount
        elif category is Category.DISBURSEMENT:
            self.disbursements += amount
        elif category is Category.FEE:
            self.billing += amount
        elif category is Category.PROVISION:
            self.provisions += amount

    def merge(self, other: "CategoryTotals") -> None:
        self.production += other.production
        self.adjustments += other.adjustments
        self.disbursements += other.disbursements
        self.billing += other.billing
        self.provisions += other.provisions

    def copy(self) -> "CategoryTotals":
        return CategoryTotals(
            production=self.production,
            adjustments=self.adjustments,
            disbursements=self.disbursements,
            billing=self.billing,
            provisions=self.provisions,
        )

    @property
    def net_change(self) -> Decimal:
        """Balance movement: everything accrues except billing, which relieves."""
        return (
            self.production
            + self.adjustments
            + self.disbursements
            + self.provisions
            - self.billing
        )

    @property
    def net_revenue(self) -> Decimal:
        """Gross production (time + disbursements) plus adjustments."""
        return self.production + self.disbursements + self.adjustments

    @property
    def has_activity(self) -> bool:
        return any(
            value != 0
            for value in (
                self.production,
                self.adjustments,
                self.disbursements,
                self.billing,
                self.provisions,
            )
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "production": float(self.production),
            "adjustments": float(self.adjustments),
            "disbursements": float(self.disbursements),
            "billing": float(self.billing),
            "provisions": float(self.provisions),
        }


@dataclass
class OpeningBalance:
    """Category totals accumulated before a reporting window."""

    totals: CategoryTotals = field(default_factory=CategoryTotals)

    @property
    def balance(self) -> Decimal:
        return self.totals.net_change


@dataclass
class PeriodBucket:
    """Category totals for one (period, partition) pair."""

    period_key: date
    partition_key: str | None = None
    totals: CategoryTotals = field(default_factory=CategoryTotals)


@dataclass(frozen=True)
class SeriesPoint:
    """One entry of a running series."""

    period_key: date
    totals: CategoryTotals
    balance: Decimal

    @property
    def has_activity(self) -> bool:
        return self.totals.has_activity

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"date": self.period_key.isoformat()}
        data.update(self.totals.to_dict())
        data["wip_balance"] = float(self.balance)
        return data


@dataclass(frozen=True)
class SeriesSummary:
    """Totals over a series plus its final balance."""

    total_production: Decimal
    total_adjustments: Decimal
    total_disbursements: Decimal
    total_billing: Decimal
    total_provisions: Decimal
    current_balance: Decimal

    def to_dict(self) -> dict[str, float]:
        return {
            "total_production": float(self.total_production),
            "total_adjustments": float(self.total_adjustments),
            "total_disbursements": float(self.total_disbursements),
            "total_billing": float(self.total_billing),
            "total_provisions": float(self.total_provisions),
            "current_wip_balance": float(self.current_balance),
        }


@dataclass(frozen=True)
class TrailingMetric:
    """Balance over trailing base metric, scaled to days."""

    period_key: date
    balance: Decimal
    trailing_sum: Decimal
    ratio: Decimal
    window_complete: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.period_key.strftime("%Y-%m"),
            "balance": float(self.balance),
            "trailing_sum": float(self.trailing_sum),
            "lockup_days": round(float(self.ratio), 2),
            "window_complete": self.window_complete,
        }


@dataclass
class SeriesResult:
    """Chart payload for one partition (or overall)."""

    points: list[SeriesPoint]
    summary: SeriesSummary
    lockup: list[TrailingMetric] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "daily_metrics": [point.to_dict() for point in self.points],
            "summary": self.summary.to_dict(),
            "lockup": [metric.to_dict() for metric in self.lockup],
        }


@dataclass
class DataQualityReport:
    """Rows the pipeline could not place where they belong."""

    uncategorized_count: int = 0
    uncategorized_codes: dict[str, int] = field(default_factory=dict)
    unmapped_count: int = 0
    unmapped_service_lines: dict[str, int] = field(default_factory=dict)
    transaction_limit_reached: bool = False

    @property
    def is_clean(self) -> bool:
        return (
            self.uncategorized_count == 0
            and self.unmapped_count == 0
            and not self.transaction_limit_reached
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "uncategorized_count": self.uncategorized_count,
            "uncategorized_codes": dict(self.uncategorized_codes),
            "unmapped_count": self.unmapped_count,
            "unmapped_service_lines": dict(self.unmapped_service_lines),
            "transaction_limit_reached": self.transaction_limit_reached,
        }


@dataclass
class GraphDataResponse:
    """Overall and per-partition series for a scope and window."""

    scope: EntityScope
    start_date: date
    end_date: date
    resolution: Resolution
    overall: SeriesResult
    by_partition: dict[str, SeriesResult]
    partitions: list[PartitionInfo]
    data_quality: DataQualityReport = field(default_factory=DataQualityReport)

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope.to_dict(),
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "resolution": self.resolution.value,
            "overall": self.overall.to_dict(),
            "by_master_service_line": {
                code: result.to_dict() for code, result in self.by_partition.items()
            },
            "master_service_lines": [info.to_dict() for info in self.partitions],
            "data_quality": self.data_quality.to_dict(),
        }
