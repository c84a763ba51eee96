"""Pytest configuration and fixtures."""

import asyncio
import os
from datetime import date
from decimal import Decimal

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("LEDGER_API_TOKEN", "test-token")

from ledger_analytics.models import (  # noqa: E402
    DebtorTransaction,
    EntityScope,
    OpeningAggregate,
    Principal,
    ScopeKind,
    ServiceLineMapping,
    Transaction,
)


def txn(day, amount, t_type="T", tran_type=None, service_line="AUD01"):
    """Build a WIP transaction from an ISO date string and a numeric amount."""
    return Transaction(
        date=date.fromisoformat(day),
        amount=Decimal(str(amount)),
        t_type=t_type,
        tran_type=tran_type,
        service_line=service_line,
    )


class FakeLedgerStore:
    """In-memory ledger store recording the calls it receives."""

    def __init__(
        self,
        transactions=None,
        opening=None,
        debtors=None,
        debtors_opening=Decimal("0"),
        delay=0.0,
        fail_on=None,
    ):
        self.transactions = transactions or []
        self.opening = opening or []
        self.debtors = debtors or []
        self.debtors_opening = debtors_opening
        self.delay = delay
        self.fail_on = fail_on
        self.calls: list[tuple] = []
        self.cancelled: list[str] = []

    async def _maybe_wait(self, name):
        if self.fail_on == name:
            raise RuntimeError(f"{name} unavailable")
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled.append(name)
                raise

    async def fetch_transactions(self, scope, start, end, master_codes=None, limit=None):
        self.calls.append(("transactions", scope, start, end, master_codes, limit))
        await self._maybe_wait("transactions")
        rows = [row for row in self.transactions if start <= row.date <= end]
        return rows[:limit] if limit is not None else rows

    async def fetch_opening_aggregates(self, scope, before, master_codes=None):
        self.calls.append(("opening", scope, before, master_codes))
        await self._maybe_wait("opening")
        return list(self.opening)

    async def fetch_debtor_transactions(self, scope, start, end):
        self.calls.append(("debtors", scope, start, end))
        await self._maybe_wait("debtors")
        return [row for row in self.debtors if start <= row.date <= end]

    async def fetch_debtor_opening_balance(self, scope, before):
        self.calls.append(("debtors_opening", scope, before))
        await self._maybe_wait("debtors_opening")
        return self.debtors_opening


class FakeMappingSource:
    def __init__(self, mappings=None, error=None):
        self.mappings = mappings or {}
        self.error = error
        self.calls = 0

    async def fetch_service_line_mappings(self):
        self.calls += 1
        if self.error:
            raise self.error
        return dict(self.mappings)


class FakeScopeResolver:
    def __init__(self, scope=None, error=None):
        self.scope = scope
        self.error = error
        self.calls = 0

    async def resolve_scope(self, principal):
        self.calls += 1
        if self.error:
            raise self.error
        return self.scope


@pytest.fixture
def principal():
    return Principal(user_id="user-1", email="Jane.Partner@example.com")


@pytest.fixture
def partner_scope():
    return EntityScope(kind=ScopeKind.PARTNER, code="P001", display_name="Jane Partner")


@pytest.fixture
def mappings():
    """Two master service lines, three service lines."""
    return {
        "AUD01": ServiceLineMapping("AUD01", "AUD", "Audit & Assurance"),
        "AUD02": ServiceLineMapping("AUD02", "AUD", "Audit & Assurance"),
        "TAX01": ServiceLineMapping("TAX01", "TAX", "Tax"),
    }


@pytest.fixture
def opening_rows():
    return [
        OpeningAggregate(t_type="T", amount=Decimal("800"), service_line="AUD01"),
        OpeningAggregate(t_type="F", amount=Decimal("300"), service_line="AUD01"),
        OpeningAggregate(t_type="D", amount=Decimal("500"), service_line="TAX01"),
    ]


@pytest.fixture
def debtor_rows():
    return [
        DebtorTransaction(date(2024, 1, 10), Decimal("500"), "Invoice", "AUD01"),
        DebtorTransaction(date(2024, 1, 25), Decimal("-200"), "Receipt", "AUD01"),
        DebtorTransaction(date(2024, 2, 5), Decimal("300"), "Invoice", "TAX01"),
    ]
