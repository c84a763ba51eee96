"""Tests for the ledger service client."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from ledger_analytics.clients.base import filter_mode_for_category
from ledger_analytics.clients.ledger_api import (
    LedgerAPIClient,
    LedgerAPIError,
    RateLimitError,
)
from ledger_analytics.models import EntityScope, Principal, ScopeKind


@pytest.fixture
def client():
    """Create a LedgerAPIClient instance."""
    return LedgerAPIClient(
        base_url="http://ledger:8000/",
        api_token="secret-token",
        max_retries=2,
        partner_categories=["CARL", "Local", "DIR"],
    )


@pytest.fixture
def scope():
    return EntityScope(kind=ScopeKind.MANAGER, code="M042")


def json_response(payload, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.content = b"{}"
    response.json.return_value = payload
    response.headers = {}
    return response


class TestLedgerAPIClientInit:
    def test_init_strips_trailing_slash(self, client):
        assert client.base_url == "http://ledger:8000"

    def test_headers_carry_bearer_token(self, client):
        assert client._get_headers()["Authorization"] == "Bearer secret-token"

    def test_init_falls_back_to_settings(self):
        client = LedgerAPIClient()

        assert client._api_token == "test-token"
        assert client._max_retries == 3


class TestRequests:
    """Tests for the generic request path."""

    @pytest.mark.asyncio
    async def test_error_status_raises_with_details(self, client):
        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(
                return_value=json_response({"detail": "boom"}, status_code=500)
            )
            mock_get.return_value = mock_http

            with pytest.raises(LedgerAPIError) as exc_info:
                await client.get("/api/v1/wip-transactions")

            assert exc_info.value.status_code == 500
            assert exc_info.value.details == {"detail": "boom"}

    @pytest.mark.asyncio
    async def test_rate_limit(self, client):
        response = json_response({}, status_code=429)
        response.headers = {"Retry-After": "5"}

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=response)
            mock_get.return_value = mock_http

            with pytest.raises(RateLimitError) as exc_info:
                await client.get("/api/v1/wip-transactions")

            assert exc_info.value.details == {"retry_after": 5}

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self, client):
        with (
            patch.object(client, "_get_client") as mock_get,
            patch("ledger_analytics.clients.ledger_api.asyncio.sleep", new=AsyncMock()) as sleep,
        ):
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(
                side_effect=[httpx.ConnectError("refused"), json_response({"ok": True})]
            )
            mock_get.return_value = mock_http

            result = await client.get("/health")

            assert result == {"ok": True}
            sleep.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_transport_errors_exhaust_retries(self, client):
        with (
            patch.object(client, "_get_client") as mock_get,
            patch("ledger_analytics.clients.ledger_api.asyncio.sleep", new=AsyncMock()),
        ):
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(side_effect=httpx.ConnectError("refused"))
            mock_get.return_value = mock_http

            with pytest.raises(LedgerAPIError, match="Request failed"):
                await client.get("/health")

            assert mock_http.request.await_count == 3


class TestLedgerStore:
    """Tests for row parsing on the ledger endpoints."""

    @pytest.mark.asyncio
    async def test_fetch_transactions(self, client, scope):
        payload = {
            "items": [
                {
                    "tran_date": "2024-01-05T00:00:00",
                    "amount": "125.50",
                    "t_type": "T",
                    "tran_type": None,
                    "service_line": "AUD01",
                    "entity_id": "C1",
                }
            ]
        }

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=json_response(payload))
            mock_get.return_value = mock_http

            rows = await client.fetch_transactions(
                scope, date(2024, 1, 1), date(2024, 1, 31), master_codes=["AUD", "TAX"], limit=100
            )

            params = mock_http.request.call_args.kwargs["params"]
            assert params["scope_kind"] == "manager"
            assert params["scope_code"] == "M042"
            assert params["master_service_lines"] == "AUD,TAX"
            assert params["limit"] == 100

        assert len(rows) == 1
        assert rows[0].date == date(2024, 1, 5)
        assert rows[0].amount == Decimal("125.50")
        assert rows[0].service_line == "AUD01"

    @pytest.mark.asyncio
    async def test_fetch_opening_aggregates(self, client, scope):
        payload = [{"t_type": "F", "amount": 300, "service_line": "TAX01"}]

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=json_response(payload))
            mock_get.return_value = mock_http

            rows = await client.fetch_opening_aggregates(scope, date(2024, 1, 1))

            assert mock_http.request.call_args.kwargs["params"]["before"] == "2024-01-01"

        assert rows[0].amount == Decimal("300")
        assert rows[0].t_type == "F"

    @pytest.mark.asyncio
    async def test_master_codes_filter_opening_aggregates(self, client, scope):
        """Test that master codes go out as the master service-line filter."""
        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=json_response([]))
            mock_get.return_value = mock_http

            await client.fetch_opening_aggregates(scope, date(2024, 1, 1), master_codes=["TAX"])

            params = mock_http.request.call_args.kwargs["params"]
            assert params["master_service_lines"] == "TAX"
            assert "service_lines" not in params

    @pytest.mark.asyncio
    async def test_invalid_amount(self, client, scope):
        payload = [{"tran_date": "2024-01-05", "amount": "abc", "t_type": "T"}]

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=json_response(payload))
            mock_get.return_value = mock_http

            with pytest.raises(LedgerAPIError, match="Invalid amount"):
                await client.fetch_transactions(scope, date(2024, 1, 1), date(2024, 1, 31))

    @pytest.mark.asyncio
    async def test_fetch_debtors(self, client, scope):
        payload = [
            {"tran_date": "2024-01-10", "total": "500", "entry_type": "Invoice"},
            {"tran_date": "2024-01-20", "total": "-200", "entry_type": "Receipt"},
        ]

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=json_response(payload))
            mock_get.return_value = mock_http

            rows = await client.fetch_debtor_transactions(
                scope, date(2024, 1, 1), date(2024, 1, 31)
            )

        assert [row.is_receipt for row in rows] == [False, True]
        assert rows[1].amount == Decimal("-200")

    @pytest.mark.asyncio
    async def test_fetch_debtor_opening_balance(self, client, scope):
        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=json_response({"balance": "1234.56"}))
            mock_get.return_value = mock_http

            balance = await client.fetch_debtor_opening_balance(scope, date(2024, 1, 1))

        assert balance == Decimal("1234.56")

    @pytest.mark.asyncio
    async def test_fetch_service_line_mappings_skips_incomplete(self, client):
        payload = [
            {"service_line": "AUD01", "master_code": "AUD", "master_name": "Audit"},
            {"service_line": "ORPHAN", "master_code": None},
        ]

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=json_response(payload))
            mock_get.return_value = mock_http

            mappings = await client.fetch_service_line_mappings()

        assert list(mappings) == ["AUD01"]
        assert mappings["AUD01"].master_name == "Audit"


class TestScopeResolution:
    """Tests for resolving a caller to an entity scope."""

    @pytest.mark.asyncio
    async def test_partner_category(self, client):
        payload = {"emp_code": "P001", "emp_cat_code": "CARL", "emp_name": "Jane Partner"}

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=json_response(payload))
            mock_get.return_value = mock_http

            scope = await client.resolve_scope(Principal("u1", "Jane.Partner@Example.com"))

            params = mock_http.request.call_args.kwargs["params"]
            assert params["email"] == "jane.partner@example.com"

        assert scope == EntityScope(ScopeKind.PARTNER, "P001", "Jane Partner")

    @pytest.mark.asyncio
    async def test_other_category_is_manager(self, client):
        payload = {"emp_code": "M042", "emp_cat_code": "SNR"}

        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(return_value=json_response(payload))
            mock_get.return_value = mock_http

            scope = await client.resolve_scope(Principal("u2", "m@example.com"))

        assert scope.kind is ScopeKind.MANAGER

    @pytest.mark.asyncio
    async def test_not_found_returns_none(self, client):
        with patch.object(client, "_get_client") as mock_get:
            mock_http = AsyncMock()
            mock_http.request = AsyncMock(
                return_value=json_response({"detail": "not found"}, status_code=404)
            )
            mock_get.return_value = mock_http

            assert await client.resolve_scope(Principal("u3", "x@example.com")) is None

    @pytest.mark.parametrize(
        "category,expected",
        [
            ("CARL", ScopeKind.PARTNER),
            ("Local", ScopeKind.PARTNER),
            ("DIR", ScopeKind.PARTNER),
            ("carl", ScopeKind.MANAGER),
            (None, ScopeKind.MANAGER),
        ],
    )
    def test_filter_mode_for_category(self, category, expected):
        assert filter_mode_for_category(category, ["CARL", "Local", "DIR"]) is expected
