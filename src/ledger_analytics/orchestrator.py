"""Aggregation orchestrator: scope, cache, parallel reads, pipeline, response.

Per request:

    resolve scope -> cache lookup -> fan out reads (one shared deadline)
    -> categorize + aggregate -> running balance -> trailing lockup
    -> downsample -> cache write

Reads either all succeed or the request fails. Cached responses are copied
in and out, so a caller may mutate what it gets back.
"""

import asyncio
import copy
import time
from collections.abc import Awaitable, Callable
from datetime import date
from decimal import Decimal
from typing import Any

from ledger_analytics.aggregator import AggregationResult, PeriodAggregator
from ledger_analytics.cache import (
    ANALYTICS_PREFIX,
    ResultCache,
    SingleFlight,
    safe_cache_get,
    safe_cache_set,
)
from ledger_analytics.categorizer import CategorizationStats
from ledger_analytics.clients.base import LedgerStore, ScopeResolver, ServiceLineMappingSource
from ledger_analytics.config import FlatSettings, get_logger, get_settings
from ledger_analytics.downsample import downsample
from ledger_analytics.errors import (
    AnalyticsError,
    ScopeResolutionError,
    UpstreamReadError,
    UpstreamTimeoutError,
)
from ledger_analytics.models import (
    UNKNOWN_PARTITION,
    ZERO,
    DataQualityReport,
    EntityScope,
    Granularity,
    GraphDataResponse,
    OpeningAggregate,
    OpeningBalance,
    PartitionInfo,
    PeriodBucket,
    Principal,
    Resolution,
    SeriesResult,
    ServiceLineMapping,
    Transaction,
)
from ledger_analytics.opening_balance import calculate_partition_openings, master_code_for
from ledger_analytics.overview import MonthlyOverview, build_monthly_overview
from ledger_analytics.periods import add_months, month_end, month_start
from ledger_analytics.query import AnalyticsQuery
from ledger_analytics.running_balance import (
    build_running_series,
    period_end_balances,
    summarize_series,
)
from ledger_analytics.trailing import compute_trailing_metrics, lookback_start

logger = get_logger(__name__, component="analytics_orchestrator")


class AnalyticsOrchestrator:
    """Composes the aggregation pipeline for a caller.

    Usage:
        orchestrator = AnalyticsOrchestrator(
            ledger=client, mappings=client, scopes=client, cache=InMemoryResultCache()
        )
        graphs = await orchestrator.get_graph_data(principal, {"resolution": "high"})
        overview = await orchestrator.get_monthly_overview(principal)
    """

    def __init__(
        self,
        ledger: LedgerStore,
        mappings: ServiceLineMappingSource,
        scopes: ScopeResolver,
        cache: ResultCache | None = None,
        settings: FlatSettings | None = None,
        today: Callable[[], date] = date.today,
    ):
        self._ledger = ledger
        self._mappings = mappings
        self._scopes = scopes
        self._cache = cache
        self._settings = settings or get_settings()
        self._today = today
        self._single_flight = SingleFlight()
        self._logger = logger

    # === Configuration helpers ===

    def target_points(self, resolution: Resolution) -> int:
        """Downsample target for a chart resolution."""
        if resolution is Resolution.HIGH:
            return self._settings.resolution_high_points
        if resolution is Resolution.STANDARD:
            return self._settings.resolution_standard_points
        return self._settings.resolution_low_points

    def cache_ttl(self, end: date) -> int:
        """Closed months never change; the current month still moves."""
        if end < month_start(self._today()):
            return self._settings.cache_ttl_closed_seconds
        return self._settings.cache_ttl_current_seconds

    @staticmethod
    def graph_cache_key(scope: EntityScope, query: AnalyticsQuery, start: date, end: date) -> str:
        partitions = ",".join(query.partitions) or "all"
        return (
            f"{ANALYTICS_PREFIX}graphs:{scope.cache_token}:{query.resolution.value}:"
            f"{query.granularity.value}:{start.isoformat()}:{end.isoformat()}:{partitions}"
        )

    @staticmethod
    def overview_cache_key(scope: EntityScope, start: date, end: date) -> str:
        return f"{ANALYTICS_PREFIX}overview:{scope.cache_token}:{start.isoformat()}:{end.isoformat()}"

    async def invalidate_scope(self, scope: EntityScope) -> int:
        """Drop every cached result computed for a scope."""
        if self._cache is None:
            return 0
        removed = 0
        for kind in ("graphs", "overview"):
            prefix = f"{ANALYTICS_PREFIX}{kind}:{scope.cache_token}:"
            try:
                removed += await self._cache.invalidate(prefix)
            except Exception as e:
                self._logger.warning("cache_invalidate_failed", prefix=prefix, error=str(e))
        self._logger.debug("scope_cache_invalidated", scope=scope.cache_token, removed=removed)
        return removed

    # === Fetch phase ===

    def _deadline(self) -> float:
        return asyncio.get_running_loop().time() + self._settings.fetch_timeout_seconds

    async def _resolve_scope(self, principal: Principal, deadline: float) -> EntityScope:
        try:
            async with asyncio.timeout_at(deadline):
                scope = await self._scopes.resolve_scope(principal)
        except TimeoutError as exc:
            raise UpstreamTimeoutError("Scope resolution timed out") from exc
        except AnalyticsError:
            raise
        except Exception as exc:
            raise UpstreamReadError(
                "Scope resolution failed", details={"read": "scope", "error": str(exc)}
            ) from exc

        if scope is None:
            raise ScopeResolutionError(
                "No employee record found for your account",
                details={"user_id": principal.user_id},
            )
        return scope

    async def _gather_reads(
        self, deadline: float, reads: dict[str, Awaitable[Any]]
    ) -> dict[str, Any]:
        """Run independent reads concurrently with a single join point.

        The first failure (or the deadline) cancels the remaining reads.
        """
        tasks = {name: asyncio.ensure_future(read) for name, read in reads.items()}
        try:
            async with asyncio.timeout_at(deadline):
                results = await asyncio.gather(*tasks.values())
        except TimeoutError as exc:
            pending = [
                name for name, task in tasks.items() if not task.done() or task.cancelled()
            ]
            raise UpstreamTimeoutError(
                "Ledger reads timed out", details={"pending": pending}
            ) from exc
        except Exception as exc:
            failed = next(
                (
                    name
                    for name, task in tasks.items()
                    if task.done() and not task.cancelled() and task.exception() is not None
                ),
                "unknown",
            )
            raise UpstreamReadError(
                f"Ledger read failed: {failed}", details={"read": failed, "error": str(exc)}
            ) from exc
        finally:
            pending_tasks = [task for task in tasks.values() if not task.done()]
            for task in pending_tasks:
                task.cancel()
            if pending_tasks:
                await asyncio.gather(*pending_tasks, return_exceptions=True)

        return dict(zip(tasks, results))

    # === Graph data ===

    async def get_graph_data(
        self, principal: Principal, query: AnalyticsQuery | dict[str, Any] | None = None
    ) -> GraphDataResponse:
        """Daily WIP series, summaries and lockup for a caller's scope."""
        if not isinstance(query, AnalyticsQuery):
            query = AnalyticsQuery.parse(query or {})

        deadline = self._deadline()
        scope = await self._resolve_scope(principal, deadline)
        start, end = query.resolve_window(
            self._today(),
            default_months=self._settings.graph_window_months,
            fiscal_start_month=self._settings.fiscal_year_start_month,
        )

        cache_key = self.graph_cache_key(scope, query, start, end)
        cached = await safe_cache_get(self._cache, cache_key)
        if cached is not None:
            self._logger.info(
                "cache_hit",
                key=cache_key,
                user_id=principal.user_id,
                scope=scope.cache_token,
                resolution=query.resolution.value,
            )
            return copy.deepcopy(cached)

        return await self._single_flight.do(
            cache_key,
            lambda: self._compute_graph_data(principal, scope, query, start, end, deadline, cache_key),
        )

    async def _compute_graph_data(
        self,
        principal: Principal,
        scope: EntityScope,
        query: AnalyticsQuery,
        start: date,
        end: date,
        deadline: float,
        cache_key: str,
    ) -> GraphDataResponse:
        started = time.monotonic()
        span = self._settings.trailing_span
        lookback = lookback_start(start, span, Granularity.MONTH)
        master_codes = list(query.partitions) or None
        limit = self._settings.transaction_limit

        reads = await self._gather_reads(
            deadline,
            {
                "transactions": self._ledger.fetch_transactions(
                    scope, lookback, end, master_codes, limit
                ),
                "opening": self._ledger.fetch_opening_aggregates(scope, start, master_codes),
                "mappings": self._mappings.fetch_service_line_mappings(),
            },
        )
        transactions: list[Transaction] = reads["transactions"]
        opening_rows: list[OpeningAggregate] = reads["opening"]
        mappings: dict[str, ServiceLineMapping] = reads["mappings"]

        limit_reached = len(transactions) >= limit
        if limit_reached:
            self._logger.warning(
                "transaction_limit_reached",
                scope=scope.cache_token,
                limit=limit,
                start=lookback.isoformat(),
                end=end.isoformat(),
            )

        if query.partitions:
            wanted = set(query.partitions)
            transactions = [
                txn
                for txn in transactions
                if master_code_for(txn.service_line, mappings) in wanted
            ]
            opening_rows = [
                row
                for row in opening_rows
                if master_code_for(row.service_line, mappings) in wanted
            ]

        response = self._build_graph_response(
            scope, query, start, end, lookback, transactions, opening_rows, mappings
        )
        response.data_quality.transaction_limit_reached = limit_reached

        await safe_cache_set(
            self._cache, cache_key, copy.deepcopy(response), self.cache_ttl(end)
        )

        self._logger.info(
            "graph_data_generated",
            user_id=principal.user_id,
            scope=scope.cache_token,
            resolution=query.resolution.value,
            transaction_count=len(transactions),
            partitions=len(response.by_partition),
            start=start.isoformat(),
            end=end.isoformat(),
            duration_ms=round((time.monotonic() - started) * 1000),
        )
        return response

    def _build_graph_response(
        self,
        scope: EntityScope,
        query: AnalyticsQuery,
        start: date,
        end: date,
        lookback: date,
        transactions: list[Transaction],
        opening_rows: list[OpeningAggregate],
        mappings: dict[str, ServiceLineMapping],
    ) -> GraphDataResponse:
        span = self._settings.trailing_span
        target = self.target_points(query.resolution)

        visible = [txn for txn in transactions if start <= txn.date <= end]
        period_data = PeriodAggregator(query.granularity, mappings).aggregate(visible)
        # Monthly pass over the full lookback range feeds trailing net revenue
        # and is the pass the data quality counts come from.
        monthly = PeriodAggregator(Granularity.MONTH, mappings).aggregate(transactions)

        opening_stats = CategorizationStats()
        opening, partition_openings = calculate_partition_openings(
            opening_rows, mappings, opening_stats
        )

        def build(
            buckets: dict[date, PeriodBucket],
            monthly_buckets: dict[date, PeriodBucket],
            seed: OpeningBalance,
        ) -> SeriesResult:
            series = build_running_series(seed.balance, buckets, start, end, query.granularity)
            revenue = {key: bucket.totals.net_revenue for key, bucket in monthly_buckets.items()}
            lockup = compute_trailing_metrics(
                period_end_balances(series), revenue, span=span, base_start=lookback
            )
            return SeriesResult(
                points=downsample(series, target),
                summary=summarize_series(series, seed.balance),
                lockup=lockup,
            )

        overall = build(period_data.overall, monthly.overall, opening)

        codes = set(period_data.by_partition)
        codes.update(code for code, seed in partition_openings.items() if seed.balance != ZERO)
        by_partition = {
            code: build(
                period_data.by_partition.get(code, {}),
                monthly.by_partition.get(code, {}),
                partition_openings.get(code, OpeningBalance()),
            )
            for code in sorted(codes)
        }

        return GraphDataResponse(
            scope=scope,
            start_date=start,
            end_date=end,
            resolution=query.resolution,
            overall=overall,
            by_partition=by_partition,
            partitions=self._partition_metadata(codes, mappings),
            data_quality=self._data_quality(monthly, opening_stats, scope),
        )

    @staticmethod
    def _partition_metadata(
        codes: set[str], mappings: dict[str, ServiceLineMapping]
    ) -> list[PartitionInfo]:
        names: dict[str, str] = {}
        for mapping in mappings.values():
            names.setdefault(mapping.master_code, mapping.master_name or mapping.master_code)
        return [
            PartitionInfo(code=code, name=names.get(code, code))
            for code in sorted(codes)
            if code != UNKNOWN_PARTITION
        ]

    def _data_quality(
        self,
        aggregation: AggregationResult,
        opening_stats: CategorizationStats,
        scope: EntityScope,
    ) -> DataQualityReport:
        stats = CategorizationStats()
        stats.merge(aggregation.stats)
        stats.merge(opening_stats)
        stats.log_warnings(scope=scope.cache_token)
        return DataQualityReport(
            uncategorized_count=stats.uncategorized_count,
            uncategorized_codes=dict(stats.uncategorized),
            unmapped_count=sum(aggregation.unmapped.values()),
            unmapped_service_lines=dict(aggregation.unmapped),
        )

    # === Monthly overview ===

    async def get_monthly_overview(
        self, principal: Principal, months: int | None = None
    ) -> MonthlyOverview:
        """Rolling monthly metrics ending with the current month."""
        months = months or self._settings.overview_months
        if months < 1:
            raise ValueError(f"months must be positive: {months}")

        deadline = self._deadline()
        scope = await self._resolve_scope(principal, deadline)
        end = month_end(self._today())
        start = month_start(add_months(end, -(months - 1)))

        cache_key = self.overview_cache_key(scope, start, end)
        cached = await safe_cache_get(self._cache, cache_key)
        if cached is not None:
            self._logger.info("cache_hit", key=cache_key, scope=scope.cache_token)
            return copy.deepcopy(cached)

        return await self._single_flight.do(
            cache_key,
            lambda: self._compute_overview(principal, scope, start, end, deadline, cache_key),
        )

    async def _compute_overview(
        self,
        principal: Principal,
        scope: EntityScope,
        start: date,
        end: date,
        deadline: float,
        cache_key: str,
    ) -> MonthlyOverview:
        started = time.monotonic()
        span = self._settings.trailing_span
        lookback = lookback_start(start, span, Granularity.MONTH)
        limit = self._settings.transaction_limit

        reads = await self._gather_reads(
            deadline,
            {
                "wip": self._ledger.fetch_transactions(scope, lookback, end, None, limit),
                "wip_opening": self._ledger.fetch_opening_aggregates(scope, start),
                "debtors": self._ledger.fetch_debtor_transactions(scope, lookback, end),
                "debtors_opening": self._ledger.fetch_debtor_opening_balance(scope, start),
            },
        )
        debtors_opening: Decimal = reads["debtors_opening"]

        overview = build_monthly_overview(
            scope,
            start,
            end,
            wip_transactions=reads["wip"],
            wip_opening=reads["wip_opening"],
            debtor_transactions=reads["debtors"],
            debtor_opening=debtors_opening,
            lookback_from=lookback,
            span=span,
        )
        if len(reads["wip"]) >= limit:
            overview.data_quality.transaction_limit_reached = True
            self._logger.warning("transaction_limit_reached", scope=scope.cache_token, limit=limit)
        if overview.data_quality.uncategorized_count:
            self._logger.warning(
                "uncategorized_transactions",
                count=overview.data_quality.uncategorized_count,
                codes=overview.data_quality.uncategorized_codes,
                scope=scope.cache_token,
            )

        ttl = self._settings.cache_ttl_current_seconds
        await safe_cache_set(self._cache, cache_key, copy.deepcopy(overview), ttl)

        self._logger.info(
            "overview_generated",
            user_id=principal.user_id,
            scope=scope.cache_token,
            filter_mode=scope.kind.value,
            month_count=len(overview.monthly_metrics),
            duration_ms=round((time.monotonic() - started) * 1000),
        )
        return overview
