"""Port interfaces for the ledger, the LLM and the allocation store."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from ..models import AllocationRecord, AllocationRun

logger = logging.getLogger(__name__)

# Standard timeout for ledger HTTP calls: 30s connect, 60s read
ADAPTER_TIMEOUT = httpx.Timeout(connect=30.0, read=60.0, write=30.0, pool=30.0)


class LedgerPort(ABC):
    """Accounting ledger: cached reports plus live transaction read/write."""

    @abstractmethod
    async def is_connected(self) -> bool:
        """True when ledger credentials are present."""
        pass

    @abstractmethod
    async def get_cached_report(self, report_type: str) -> Optional[str]:
        """Raw JSON of the last synced report (``budgets``, ``expenses``, ``classes``)."""
        pass

    @abstractmethod
    async def fetch_transaction(self, purchase_id: str) -> Dict[str, Any]:
        """Fetch the live purchase object (including its current SyncToken)."""
        pass

    @abstractmethod
    async def update_transaction(self, purchase: Dict[str, Any]) -> Dict[str, Any]:
        """Write a full purchase object back to the ledger."""
        pass

    @abstractmethod
    async def refresh_token(self) -> str:
        """Return a valid access token, refreshing it when close to expiry."""
        pass


class RecommenderPort(ABC):
    """LLM completion endpoint."""

    @abstractmethod
    async def complete(self, system_prompt: str, payload: str) -> str:
        """Send one request and return the raw response body."""
        pass


class StorePort(ABC):
    """Persistence for runs and allocation records."""

    @abstractmethod
    async def get_running_run(self) -> Optional[AllocationRun]:
        pass

    @abstractmethod
    async def get_latest_run(self) -> Optional[AllocationRun]:
        pass

    @abstractmethod
    async def get_run(self, run_id: str) -> Optional[AllocationRun]:
        pass

    @abstractmethod
    async def create_run(self, started_by: str, total_expenses: int) -> str:
        """Insert a run in ``running`` status and return its id."""
        pass

    @abstractmethod
    async def update_run(self, run_id: str, **fields: Any) -> None:
        pass

    @abstractmethod
    async def save_allocations(self, batch: List[AllocationRecord]) -> int:
        """Insert a batch of allocation records. Returns the number saved."""
        pass

    @abstractmethod
    async def get_allocations(self, run_id: str) -> List[AllocationRecord]:
        pass

    @abstractmethod
    async def get_allocation(self, allocation_id: str) -> Optional[AllocationRecord]:
        pass

    @abstractmethod
    async def update_allocation(self, allocation_id: str, fields: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def update_allocation_status(
        self,
        allocation_id: str,
        status: str,
        error_message: Optional[str] = None,
        submitted_at: Optional[datetime] = None,
    ) -> None:
        pass


def adapter_retry():
    """Retry decorator for report sync HTTP calls: 3 attempts, exponential backoff."""
    return retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((httpx.HTTPError, httpx.TimeoutException)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
