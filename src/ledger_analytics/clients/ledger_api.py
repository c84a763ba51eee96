"""Ledger service client with bearer-token authentication and retries."""

import asyncio
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from ledger_analytics.clients.base import filter_mode_for_category
from ledger_analytics.config import get_logger, get_settings
from ledger_analytics.models import (
    ZERO,
    DebtorTransaction,
    EntityScope,
    OpeningAggregate,
    Principal,
    ServiceLineMapping,
    Transaction,
)

logger = get_logger(__name__)


class LedgerAPIError(Exception):
    """Base exception for ledger service errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class RateLimitError(LedgerAPIError):
    """Rate limit exceeded."""

    pass


def _parse_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise LedgerAPIError(f"Invalid amount in ledger response: {value!r}") from exc


def _parse_date(value: Any) -> date:
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise LedgerAPIError(f"Invalid date in ledger response: {value!r}") from exc


class LedgerAPIClient:
    """Async client for the ledger REST service.

    Implements the ledger store, service-line mapping source and scope
    resolver interfaces.

    Usage:
        async with LedgerAPIClient() as client:
            rows = await client.fetch_transactions(scope, start, end)
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_token: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        partner_categories: list[str] | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.ledger_api_url).rstrip("/")
        self._api_token = api_token or settings.ledger_api_token.get_secret_value()
        self._timeout = timeout if timeout is not None else settings.ledger_timeout
        self._max_retries = max_retries if max_retries is not None else settings.ledger_max_retries
        self._partner_categories = (
            partner_categories if partner_categories is not None else settings.partner_categories
        )
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "LedgerAPIClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self._api_token}",
        }

    # === Generic Request Methods ===

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> Any:
        """Make an authenticated request with retry on transport errors."""
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                headers=self._get_headers(),
            )

            if response.status_code == 429:
                retry_after = int(response.headers.get("Retry-After", "60"))
                raise RateLimitError(
                    f"Rate limited, retry after {retry_after}s",
                    status_code=429,
                    details={"retry_after": retry_after},
                )

            if response.status_code >= 400:
                try:
                    error_detail = response.json() if response.content else {}
                except ValueError:
                    error_detail = {
                        "raw": response.text[:500] if response.text else "empty response"
                    }
                raise LedgerAPIError(
                    f"API error: {response.status_code}",
                    status_code=response.status_code,
                    details=error_detail,
                )

            return response.json() if response.content else {}

        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                await asyncio.sleep(2**retry_count)  # Exponential backoff
                return await self._request(method, path, params, retry_count + 1)
            raise LedgerAPIError(f"Request failed: {e}") from e

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Make GET request."""
        return await self._request("GET", path, params=params)

    @staticmethod
    def _extract_items(result: Any) -> list[dict[str, Any]]:
        """Return list of items from a list or paged response."""
        if isinstance(result, list):
            return result
        if isinstance(result, dict):
            items = result.get("items")
            if isinstance(items, list):
                return items
        return []

    @staticmethod
    def _scope_params(scope: EntityScope) -> dict[str, Any]:
        return {"scope_kind": scope.kind.value, "scope_code": scope.code}

    # === Ledger Store ===

    async def fetch_transactions(
        self,
        scope: EntityScope,
        start: date,
        end: date,
        master_codes: list[str] | None = None,
        limit: int | None = None,
    ) -> list[Transaction]:
        """Fetch WIP transactions dated within [start, end]."""
        params = self._scope_params(scope)
        params.update({"date_from": start.isoformat(), "date_to": end.isoformat()})
        if master_codes:
            params["master_service_lines"] = ",".join(master_codes)
        if limit is not None:
            params["limit"] = limit

        result = await self.get("/api/v1/wip-transactions", params=params)
        return [
            Transaction(
                date=_parse_date(item["tran_date"]),
                amount=_parse_decimal(item.get("amount")),
                t_type=str(item.get("t_type") or ""),
                tran_type=item.get("tran_type"),
                service_line=item.get("service_line"),
                entity_id=item.get("entity_id"),
            )
            for item in self._extract_items(result)
        ]

    async def fetch_opening_aggregates(
        self,
        scope: EntityScope,
        before: date,
        master_codes: list[str] | None = None,
    ) -> list[OpeningAggregate]:
        """Fetch WIP sums before a date, grouped by type, sub-type and service line."""
        params = self._scope_params(scope)
        params["before"] = before.isoformat()
        if master_codes:
            params["master_service_lines"] = ",".join(master_codes)

        result = await self.get("/api/v1/wip-transactions/opening", params=params)
        return [
            OpeningAggregate(
                t_type=str(item.get("t_type") or ""),
                tran_type=item.get("tran_type"),
                service_line=item.get("service_line"),
                amount=_parse_decimal(item.get("amount")),
            )
            for item in self._extract_items(result)
        ]

    async def fetch_debtor_transactions(
        self, scope: EntityScope, start: date, end: date
    ) -> list[DebtorTransaction]:
        """Fetch debtors ledger rows dated within [start, end]."""
        params = self._scope_params(scope)
        params.update({"date_from": start.isoformat(), "date_to": end.isoformat()})

        result = await self.get("/api/v1/debtor-transactions", params=params)
        return [
            DebtorTransaction(
                date=_parse_date(item["tran_date"]),
                amount=_parse_decimal(item.get("total")),
                entry_type=item.get("entry_type"),
                service_line=item.get("service_line"),
            )
            for item in self._extract_items(result)
        ]

    async def fetch_debtor_opening_balance(self, scope: EntityScope, before: date) -> Decimal:
        """Fetch the debtors balance accumulated before a date."""
        params = self._scope_params(scope)
        params["before"] = before.isoformat()

        result = await self.get("/api/v1/debtor-transactions/opening", params=params)
        if not isinstance(result, dict):
            raise LedgerAPIError("Invalid debtors opening balance response format")
        return _parse_decimal(result.get("balance"))

    # === Service Line Mappings ===

    async def fetch_service_line_mappings(self) -> dict[str, ServiceLineMapping]:
        """Fetch the service line to master service line table."""
        result = await self.get("/api/v1/service-lines/mappings")
        mappings: dict[str, ServiceLineMapping] = {}
        for item in self._extract_items(result):
            code = item.get("service_line")
            master = item.get("master_code")
            if not code or not master:
                logger.warning("incomplete_service_line_mapping", item=item)
                continue
            mappings[code] = ServiceLineMapping(
                service_line=code,
                master_code=master,
                master_name=item.get("master_name") or "",
            )
        return mappings

    # === Scope Resolution ===

    async def resolve_scope(self, principal: Principal) -> EntityScope | None:
        """Look up the active employee record for a caller."""
        try:
            result = await self.get(
                "/api/v1/employees/lookup",
                params={"email": principal.email.lower(), "active": "true"},
            )
        except LedgerAPIError as exc:
            if exc.status_code == 404:
                return None
            raise

        if not isinstance(result, dict) or not result.get("emp_code"):
            return None

        kind = filter_mode_for_category(result.get("emp_cat_code"), self._partner_categories)
        scope = EntityScope(
            kind=kind,
            code=str(result["emp_code"]),
            display_name=result.get("emp_name"),
        )
        logger.debug("scope_resolved", user_id=principal.user_id, scope=scope.cache_token)
        return scope
