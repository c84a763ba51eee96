"""Interfaces of the external collaborators the engine reads from."""

from datetime import date
from decimal import Decimal
from typing import Protocol

from ledger_analytics.models import (
    DebtorTransaction,
    EntityScope,
    OpeningAggregate,
    Principal,
    ScopeKind,
    ServiceLineMapping,
    Transaction,
)


class LedgerStore(Protocol):
    """Read-only, scope-filtered ledger queries."""

    async def fetch_transactions(
        self,
        scope: EntityScope,
        start: date,
        end: date,
        master_codes: list[str] | None = None,
        limit: int | None = None,
    ) -> list[Transaction]:
        """WIP rows dated within [start, end], ordered by date.

        ``master_codes`` narrows the read to service lines rolling up to those
        master service-line codes.
        """
        ...

    async def fetch_opening_aggregates(
        self,
        scope: EntityScope,
        before: date,
        master_codes: list[str] | None = None,
    ) -> list[OpeningAggregate]:
        """WIP rows dated before ``before``, summed per type, sub-type and service line.

        ``master_codes`` narrows the read the same way as ``fetch_transactions``.
        """
        ...

    async def fetch_debtor_transactions(
        self, scope: EntityScope, start: date, end: date
    ) -> list[DebtorTransaction]: ...

    async def fetch_debtor_opening_balance(self, scope: EntityScope, before: date) -> Decimal: ...


class ServiceLineMappingSource(Protocol):
    async def fetch_service_line_mappings(self) -> dict[str, ServiceLineMapping]: ...


class ScopeResolver(Protocol):
    async def resolve_scope(self, principal: Principal) -> EntityScope | None:
        """Entity scope for a caller, or None when the caller has none."""
        ...


def filter_mode_for_category(
    emp_cat_code: str | None, partner_categories: list[str]
) -> ScopeKind:
    """Partners see tasks they partner; everyone else sees tasks they manage."""
    if emp_cat_code and emp_cat_code in partner_categories:
        return ScopeKind.PARTNER
    return ScopeKind.MANAGER
