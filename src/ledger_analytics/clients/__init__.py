"""Clients and interfaces for the ledger, mapping and scope collaborators."""

from ledger_analytics.clients.base import (
    LedgerStore,
    ScopeResolver,
    ServiceLineMappingSource,
    filter_mode_for_category,
)
from ledger_analytics.clients.ledger_api import LedgerAPIClient, LedgerAPIError, RateLimitError

__all__ = [
    "LedgerStore",
    "ScopeResolver",
    "ServiceLineMappingSource",
    "filter_mode_for_category",
    "LedgerAPIClient",
    "LedgerAPIError",
    "RateLimitError",
]
