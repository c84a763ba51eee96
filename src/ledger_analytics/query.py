"""Validated analytics query parameters."""

from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ledger_analytics.errors import InvalidQueryError
from ledger_analytics.models import Granularity, Resolution
from ledger_analytics.periods import (
    DEFAULT_FISCAL_YEAR_START_MONTH,
    add_months,
    fiscal_month_range,
    fiscal_quarter_range,
    fiscal_year_range,
)


class AnalyticsQuery(BaseModel):
    """Graph query: a date window or a fiscal period, plus chart options.

    With neither a window nor a fiscal period, the window defaults to the
    trailing ``graph_window_months`` ending today.
    """

    model_config = ConfigDict(frozen=True)

    start_date: date | None = None
    end_date: date | None = None
    fiscal_year: int | None = Field(default=None, ge=1900, le=2999)
    fiscal_quarter: int | None = Field(default=None, ge=1, le=4)
    fiscal_month: int | None = Field(default=None, ge=1, le=12)
    resolution: Resolution = Resolution.LOW
    granularity: Granularity = Granularity.DAY
    partitions: tuple[str, ...] = ()

    @field_validator("partitions", mode="before")
    @classmethod
    def _normalize_partitions(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = value.split(",")
        cleaned = {str(code).strip().upper() for code in value if str(code).strip()}
        return tuple(sorted(cleaned))

    @model_validator(mode="after")
    def _check_window(self) -> "AnalyticsQuery":
        has_window = self.start_date is not None or self.end_date is not None
        has_fiscal = self.fiscal_year is not None
        if has_window and has_fiscal:
            raise ValueError("Give either a date window or a fiscal period, not both")
        if has_window and (self.start_date is None or self.end_date is None):
            raise ValueError("A date window needs both start_date and end_date")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        if not has_fiscal and (self.fiscal_quarter or self.fiscal_month):
            raise ValueError("fiscal_quarter and fiscal_month need fiscal_year")
        if self.fiscal_quarter and self.fiscal_month:
            raise ValueError("Give fiscal_quarter or fiscal_month, not both")
        return self

    @classmethod
    def parse(cls, params: dict[str, Any]) -> "AnalyticsQuery":
        """Build a query from raw parameters, raising InvalidQueryError."""
        cleaned = {key: value for key, value in params.items() if value is not None}
        try:
            return cls.model_validate(cleaned)
        except ValidationError as exc:
            raise InvalidQueryError(
                "Invalid analytics query",
                details=exc.errors(include_url=False, include_context=False),
            ) from exc

    def resolve_window(
        self,
        today: date,
        default_months: int = 12,
        fiscal_start_month: int = DEFAULT_FISCAL_YEAR_START_MONTH,
    ) -> tuple[date, date]:
        """Concrete (start, end) dates for this query."""
        if self.start_date is not None and self.end_date is not None:
            return self.start_date, self.end_date
        if self.fiscal_year is not None:
            if self.fiscal_month is not None:
                return fiscal_month_range(self.fiscal_year, self.fiscal_month, fiscal_start_month)
            if self.fiscal_quarter is not None:
                return fiscal_quarter_range(
                    self.fiscal_year, self.fiscal_quarter, fiscal_start_month
                )
            return fiscal_year_range(self.fiscal_year, fiscal_start_month)
        return add_months(today, -default_months), today
