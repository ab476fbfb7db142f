"""QuickBooks Online ledger adapter.

Reads cached reports and OAuth credentials from Supabase, talks to the
QuickBooks v3 REST API for live purchase reads/writes and report queries,
and refreshes the access token against Intuit's OAuth2 endpoint when it is
about to expire.
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx

from ..errors import ConfigError, SubmissionError
from ..models import LedgerConnection
from .base import ADAPTER_TIMEOUT, LedgerPort

logger = logging.getLogger(__name__)

PRODUCTION_BASE_URL = "https://quickbooks.api.intuit.com"
SANDBOX_BASE_URL = "https://sandbox-quickbooks.api.intuit.com"
TOKEN_URL = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
MINOR_VERSION = "65"

# Refresh the access token when it expires within this window
TOKEN_REFRESH_MARGIN = timedelta(seconds=60)


class QuickBooksLedger(LedgerPort):
    """LedgerPort backed by QuickBooks Online.

    Args:
        store: Supabase client holding ``ledger_config`` and ``ledger_cache``.
        client_id: Intuit app client id (for token refresh).
        client_secret: Intuit app client secret.
        environment: ``sandbox`` or ``production``.
        http_client: Optional shared httpx client (tests inject one).
    """

    def __init__(
        self,
        store,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        environment: str = "sandbox",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.store = store
        self.client_id = client_id
        self.client_secret = client_secret
        self.environment = environment
        self._http = http_client

    @property
    def base_url(self) -> str:
        return PRODUCTION_BASE_URL if self.environment == "production" else SANDBOX_BASE_URL

    # ------------------------------------------------------------------
    # LedgerPort
    # ------------------------------------------------------------------

    async def is_connected(self) -> bool:
        return await self.store.get_ledger_config() is not None

    async def get_cached_report(self, report_type: str) -> Optional[str]:
        return await self.store.get_cached_report(report_type)

    async def refresh_token(self) -> str:
        """Return an access token valid for at least the next minute."""
        connection = await self._connection()
        if connection.token_expiry > datetime.now(timezone.utc) + TOKEN_REFRESH_MARGIN:
            return connection.access_token
        return await self._refresh(connection)

    async def fetch_transaction(self, purchase_id: str) -> Dict[str, Any]:
        """GET the live purchase; raises SubmissionError on any failure."""
        url = f"{await self._company_url()}/purchase/{purchase_id}"
        try:
            response = await self._request("GET", url)
        except httpx.HTTPError as e:
            raise SubmissionError(f"QB fetch error: {e}") from e

        if response.status_code >= 400:
            raise SubmissionError(f"QB fetch error: {response.status_code}")
        purchase = response.json().get("Purchase")
        if not purchase:
            raise SubmissionError("Purchase not found in QuickBooks")
        return purchase

    async def update_transaction(self, purchase: Dict[str, Any]) -> Dict[str, Any]:
        """POST the full purchase object back; raises SubmissionError on failure."""
        url = f"{await self._company_url()}/purchase"
        try:
            response = await self._request("POST", url, json=purchase)
        except httpx.HTTPError as e:
            raise SubmissionError(f"QB update error: {e}") from e

        if response.status_code >= 400:
            raise SubmissionError(f"QB update error: {response.status_code} - {response.text}")
        return response.json().get("Purchase") or {}

    # ------------------------------------------------------------------
    # Report queries (used by the sync job)
    # ------------------------------------------------------------------

    async def query(self, statement: str) -> Dict[str, Any]:
        """Run a QuickBooks query statement and return the raw JSON body.

        HTTP errors propagate as httpx exceptions so callers can retry.
        """
        url = f"{await self._company_url()}/query"
        start = time.monotonic()
        response = await self._request("GET", url, params={"query": statement})
        duration = time.monotonic() - start
        logger.info(
            f"[quickbooks] query status={response.status_code} duration={duration:.2f}s"
        )
        response.raise_for_status()
        return response.json()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _connection(self) -> LedgerConnection:
        connection = await self.store.get_ledger_config()
        if connection is None:
            raise ConfigError("QuickBooks not connected")
        return connection

    async def _company_url(self) -> str:
        connection = await self._connection()
        return f"{self.base_url}/v3/company/{connection.realm_id}"

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        token = await self.refresh_token()
        params = dict(kwargs.pop("params", None) or {})
        params["minorversion"] = MINOR_VERSION
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        if self._http is not None:
            return await self._http.request(method, url, params=params, headers=headers, **kwargs)
        async with httpx.AsyncClient(timeout=ADAPTER_TIMEOUT) as client:
            return await client.request(method, url, params=params, headers=headers, **kwargs)

    async def _refresh(self, connection: LedgerConnection) -> str:
        if not self.client_id or not self.client_secret:
            raise ConfigError("QB_CLIENT_ID and QB_CLIENT_SECRET are required to refresh tokens")

        data = {"grant_type": "refresh_token", "refresh_token": connection.refresh_token}
        auth = httpx.BasicAuth(self.client_id, self.client_secret)
        headers = {"Accept": "application/json"}
        if self._http is not None:
            response = await self._http.post(TOKEN_URL, data=data, auth=auth, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=ADAPTER_TIMEOUT) as client:
                response = await client.post(TOKEN_URL, data=data, auth=auth, headers=headers)
        response.raise_for_status()
        token = response.json()

        access_token = token["access_token"]
        refresh_token = token.get("refresh_token") or connection.refresh_token
        expiry = datetime.now(timezone.utc) + timedelta(seconds=int(token.get("expires_in", 3600)))
        await self.store.update_ledger_tokens(connection.id, access_token, refresh_token, expiry)
        logger.info(f"token_refreshed realm_id={connection.realm_id} expires_at={expiry.isoformat()}")
        return access_token
