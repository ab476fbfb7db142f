"""Unit tests for the QuickBooks ledger adapter with mocked httpx responses (respx)."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import respx

from grant_allocation.adapters import QuickBooksLedger
from grant_allocation.adapters.quickbooks import TOKEN_URL
from grant_allocation.errors import ConfigError, SubmissionError
from grant_allocation.models import LedgerConnection

COMPANY_URL = "https://sandbox-quickbooks.api.intuit.com/v3/company/R1"


def _connection(expires_in: timedelta = timedelta(hours=1)) -> LedgerConnection:
    return LedgerConnection(
        id="cfg-1",
        realm_id="R1",
        access_token="access-1",
        refresh_token="refresh-1",
        token_expiry=datetime.now(timezone.utc) + expires_in,
    )


@pytest.fixture
def store():
    store = MagicMock()
    store.get_ledger_config = AsyncMock(return_value=_connection())
    store.update_ledger_tokens = AsyncMock()
    store.get_cached_report = AsyncMock(return_value='{"QueryResponse": {}}')
    return store


@pytest.fixture
def ledger(store):
    return QuickBooksLedger(store, client_id="cid", client_secret="secret")


# ---------------------------------------------------------------------------
# Connection and cache
# ---------------------------------------------------------------------------

class TestConnection:
    @pytest.mark.asyncio
    async def test_connected_when_config_present(self, ledger, store):
        assert await ledger.is_connected() is True
        store.get_ledger_config.return_value = None
        assert await ledger.is_connected() is False

    @pytest.mark.asyncio
    async def test_cached_report_read_from_store(self, ledger, store):
        assert await ledger.get_cached_report("budgets") == '{"QueryResponse": {}}'
        store.get_cached_report.assert_awaited_once_with("budgets")

    def test_base_url_by_environment(self, store):
        assert "sandbox" in QuickBooksLedger(store).base_url
        assert QuickBooksLedger(store, environment="production").base_url == (
            "https://quickbooks.api.intuit.com"
        )


# ---------------------------------------------------------------------------
# Token refresh
# ---------------------------------------------------------------------------

class TestTokenRefresh:
    @pytest.mark.asyncio
    @respx.mock
    async def test_valid_token_reused(self, ledger, store):
        route = respx.post(TOKEN_URL)

        assert await ledger.refresh_token() == "access-1"
        assert not route.called
        store.update_ledger_tokens.assert_not_awaited()

    @pytest.mark.asyncio
    @respx.mock
    async def test_token_expiring_within_a_minute_is_refreshed(self, ledger, store):
        store.get_ledger_config.return_value = _connection(timedelta(seconds=30))
        route = respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"access_token": "access-2", "expires_in": 3600})
        )

        token = await ledger.refresh_token()

        assert token == "access-2"
        assert route.called
        assert b"grant_type=refresh_token" in route.calls.last.request.content
        args = store.update_ledger_tokens.await_args.args
        assert args[:3] == ("cfg-1", "access-2", "refresh-1")
        assert args[3] > datetime.now(timezone.utc) + timedelta(minutes=59)

    @pytest.mark.asyncio
    @respx.mock
    async def test_new_refresh_token_persisted(self, ledger, store):
        store.get_ledger_config.return_value = _connection(timedelta(seconds=-5))
        respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(
                200, json={"access_token": "a", "refresh_token": "refresh-2", "expires_in": 3600}
            )
        )

        await ledger.refresh_token()

        assert store.update_ledger_tokens.await_args.args[2] == "refresh-2"

    @pytest.mark.asyncio
    async def test_refresh_without_app_credentials_fails(self, store):
        store.get_ledger_config.return_value = _connection(timedelta(seconds=0))
        with pytest.raises(ConfigError):
            await QuickBooksLedger(store).refresh_token()

    @pytest.mark.asyncio
    async def test_not_connected(self, ledger, store):
        store.get_ledger_config.return_value = None
        with pytest.raises(ConfigError, match="not connected"):
            await ledger.refresh_token()


# ---------------------------------------------------------------------------
# Live purchase read/write
# ---------------------------------------------------------------------------

class TestPurchases:
    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_transaction(self, ledger):
        route = respx.get(f"{COMPANY_URL}/purchase/P1").mock(
            return_value=httpx.Response(200, json={"Purchase": {"Id": "P1", "SyncToken": "4"}})
        )

        purchase = await ledger.fetch_transaction("P1")

        assert purchase == {"Id": "P1", "SyncToken": "4"}
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer access-1"
        assert request.url.params["minorversion"] == "65"

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_http_error(self, ledger):
        respx.get(f"{COMPANY_URL}/purchase/P1").mock(return_value=httpx.Response(404))
        with pytest.raises(SubmissionError, match="QB fetch error: 404"):
            await ledger.fetch_transaction("P1")

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_missing_purchase(self, ledger):
        respx.get(f"{COMPANY_URL}/purchase/P1").mock(return_value=httpx.Response(200, json={}))
        with pytest.raises(SubmissionError, match="Purchase not found in QuickBooks"):
            await ledger.fetch_transaction("P1")

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_timeout(self, ledger):
        respx.get(f"{COMPANY_URL}/purchase/P1").mock(side_effect=httpx.ConnectTimeout("timed out"))
        with pytest.raises(SubmissionError, match="QB fetch error"):
            await ledger.fetch_transaction("P1")

    @pytest.mark.asyncio
    @respx.mock
    async def test_update_transaction_posts_full_object(self, ledger):
        route = respx.post(f"{COMPANY_URL}/purchase").mock(
            return_value=httpx.Response(200, json={"Purchase": {"Id": "P1", "SyncToken": "5"}})
        )

        result = await ledger.update_transaction({"Id": "P1", "SyncToken": "4", "Line": []})

        assert result["SyncToken"] == "5"
        assert b'"SyncToken":"4"' in route.calls.last.request.content.replace(b" ", b"")

    @pytest.mark.asyncio
    @respx.mock
    async def test_update_error_includes_body(self, ledger):
        respx.post(f"{COMPANY_URL}/purchase").mock(
            return_value=httpx.Response(400, text="Stale Object Error")
        )
        with pytest.raises(SubmissionError, match="QB update error: 400 - Stale Object Error"):
            await ledger.update_transaction({"Id": "P1"})


class TestQuery:
    @pytest.mark.asyncio
    @respx.mock
    async def test_query_returns_body(self, ledger):
        route = respx.get(f"{COMPANY_URL}/query").mock(
            return_value=httpx.Response(200, json={"QueryResponse": {"Class": []}})
        )

        data = await ledger.query("SELECT * FROM Class MAXRESULTS 1000")

        assert data == {"QueryResponse": {"Class": []}}
        assert route.calls.last.request.url.params["query"] == "SELECT * FROM Class MAXRESULTS 1000"

    @pytest.mark.asyncio
    @respx.mock
    async def test_query_raises_on_server_error(self, ledger):
        respx.get(f"{COMPANY_URL}/query").mock(return_value=httpx.Response(500))
        with pytest.raises(httpx.HTTPStatusError):
            await ledger.query("SELECT * FROM Class")
