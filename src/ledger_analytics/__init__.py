"""Ledger Analytics - WIP and debtors aggregation for dashboard time series."""

__version__ = "0.1.0"

from ledger_analytics.aggregator import AggregationResult, PeriodAggregator
from ledger_analytics.cache import InMemoryResultCache, ResultCache, SingleFlight
from ledger_analytics.categorizer import CategorizationStats, categorize_transaction
from ledger_analytics.clients import LedgerAPIClient, LedgerAPIError
from ledger_analytics.config import configure_logging, get_settings
from ledger_analytics.config.service_lines import StaticServiceLineSource
from ledger_analytics.errors import (
    AnalyticsError,
    InvalidQueryError,
    ScopeResolutionError,
    UpstreamReadError,
    UpstreamTimeoutError,
)
from ledger_analytics.models import (
    Category,
    EntityScope,
    Granularity,
    GraphDataResponse,
    Principal,
    Resolution,
    ScopeKind,
    Transaction,
)
from ledger_analytics.orchestrator import AnalyticsOrchestrator
from ledger_analytics.overview import MonthlyOverview
from ledger_analytics.query import AnalyticsQuery

__all__ = [
    # Version
    "__version__",
    # Orchestration
    "AnalyticsOrchestrator",
    "AnalyticsQuery",
    "GraphDataResponse",
    "MonthlyOverview",
    # Pipeline
    "PeriodAggregator",
    "AggregationResult",
    "CategorizationStats",
    "categorize_transaction",
    # Models
    "Category",
    "EntityScope",
    "Granularity",
    "Principal",
    "Resolution",
    "ScopeKind",
    "Transaction",
    # Cache
    "ResultCache",
    "InMemoryResultCache",
    "SingleFlight",
    # Clients
    "LedgerAPIClient",
    "LedgerAPIError",
    "StaticServiceLineSource",
    # Errors
    "AnalyticsError",
    "InvalidQueryError",
    "ScopeResolutionError",
    "UpstreamReadError",
    "UpstreamTimeoutError",
    # Config
    "get_settings",
    "configure_logging",
]
