"""Supabase database client for the allocation pipeline."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import AsyncClient, acreate_client

from ..adapters.base import StorePort
from ..models import AllocationRecord, AllocationRun, LedgerConnection

logger = logging.getLogger(__name__)

RUNS_TABLE = "allocation_runs"
ALLOCATIONS_TABLE = "expense_allocations"
CACHE_TABLE = "ledger_cache"
CONFIG_TABLE = "ledger_config"


def _jsonable(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Convert datetimes to ISO strings for the PostgREST payload."""
    return {k: v.isoformat() if isinstance(v, datetime) else v for k, v in fields.items()}


def _with_str_id(row: Dict[str, Any]) -> Dict[str, Any]:
    row = dict(row)
    if row.get("id") is not None:
        row["id"] = str(row["id"])
    if row.get("run_id") is not None:
        row["run_id"] = str(row["run_id"])
    return row


class SupabaseClient(StorePort):
    """Client for the allocation_runs, expense_allocations, ledger_cache and
    ledger_config tables.

    Build one with ``await SupabaseClient.connect(url, key)``; tests pass a
    mocked async client straight to the constructor.
    """

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    @classmethod
    async def connect(cls, url: str, key: str) -> "SupabaseClient":
        """Create the async Supabase client.

        Args:
            url: Supabase project URL.
            key: Supabase service key.
        """
        return cls(await acreate_client(url, key))

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def get_running_run(self) -> Optional[AllocationRun]:
        response = await (
            self._client.table(RUNS_TABLE)
            .select("*")
            .eq("status", "running")
            .limit(1)
            .execute()
        )
        return AllocationRun(**_with_str_id(response.data[0])) if response.data else None

    async def get_latest_run(self) -> Optional[AllocationRun]:
        response = await (
            self._client.table(RUNS_TABLE)
            .select("*")
            .order("started_at", desc=True)
            .limit(1)
            .execute()
        )
        return AllocationRun(**_with_str_id(response.data[0])) if response.data else None

    async def get_run(self, run_id: str) -> Optional[AllocationRun]:
        response = await (
            self._client.table(RUNS_TABLE)
            .select("*")
            .eq("id", run_id)
            .execute()
        )
        return AllocationRun(**_with_str_id(response.data[0])) if response.data else None

    async def create_run(self, started_by: str, total_expenses: int) -> str:
        """Insert a run in ``running`` status.

        Returns:
            The new run id.
        """
        record = {
            "status": "running",
            "started_by": started_by,
            "started_at": datetime.now(timezone.utc).isoformat(),
            "total_expenses": total_expenses,
            "total_processed": 0,
        }
        response = await self._client.table(RUNS_TABLE).insert(record).execute()
        run_id = str(response.data[0]["id"])
        logger.info("Created allocation run %s (%d expenses)", run_id, total_expenses)
        return run_id

    async def update_run(self, run_id: str, **fields: Any) -> None:
        await (
            self._client.table(RUNS_TABLE)
            .update(_jsonable(fields))
            .eq("id", run_id)
            .execute()
        )
        logger.debug("Updated run %s: %s", run_id, sorted(fields))

    # ------------------------------------------------------------------
    # Allocations
    # ------------------------------------------------------------------

    async def save_allocations(self, batch: List[AllocationRecord]) -> int:
        """Insert allocation records.

        Returns:
            Number of rows inserted.
        """
        if not batch:
            return 0
        rows = [r.model_dump(mode="json", exclude={"id"}) for r in batch]
        response = await self._client.table(ALLOCATIONS_TABLE).insert(rows).execute()
        logger.info("Saved %d allocations", len(response.data))
        return len(response.data)

    async def get_allocations(self, run_id: str) -> List[AllocationRecord]:
        response = await (
            self._client.table(ALLOCATIONS_TABLE)
            .select("*")
            .eq("run_id", run_id)
            .execute()
        )
        return [AllocationRecord(**_with_str_id(row)) for row in response.data]

    async def get_allocation(self, allocation_id: str) -> Optional[AllocationRecord]:
        response = await (
            self._client.table(ALLOCATIONS_TABLE)
            .select("*")
            .eq("id", allocation_id)
            .execute()
        )
        return AllocationRecord(**_with_str_id(response.data[0])) if response.data else None

    async def update_allocation(self, allocation_id: str, fields: Dict[str, Any]) -> None:
        await (
            self._client.table(ALLOCATIONS_TABLE)
            .update(_jsonable(fields))
            .eq("id", allocation_id)
            .execute()
        )

    async def update_allocation_status(
        self,
        allocation_id: str,
        status: str,
        error_message: Optional[str] = None,
        submitted_at: Optional[datetime] = None,
    ) -> None:
        fields: Dict[str, Any] = {"status": status, "error_message": error_message}
        if submitted_at is not None:
            fields["submitted_at"] = submitted_at
        await self.update_allocation(allocation_id, fields)
        logger.info("Updated allocation %s status to '%s'", allocation_id, status)

    # ------------------------------------------------------------------
    # Ledger cache and credentials
    # ------------------------------------------------------------------

    async def get_cached_report(self, report_type: str) -> Optional[str]:
        """Return the raw JSON blob of the latest cached report, if any."""
        response = await (
            self._client.table(CACHE_TABLE)
            .select("data")
            .eq("report_type", report_type)
            .order("fetched_at", desc=True)
            .limit(1)
            .execute()
        )
        return response.data[0]["data"] if response.data else None

    async def cache_report(
        self,
        report_type: str,
        data: str,
        period_start: Optional[str] = None,
        period_end: Optional[str] = None,
    ) -> None:
        """Replace the cached blob for ``report_type``."""
        await self._client.table(CACHE_TABLE).delete().eq("report_type", report_type).execute()
        record = {
            "report_type": report_type,
            "data": data,
            "fetched_at": datetime.now(timezone.utc).isoformat(),
            "period_start": period_start,
            "period_end": period_end,
        }
        await self._client.table(CACHE_TABLE).insert(record).execute()
        logger.info("Cached %s report (%d bytes)", report_type, len(data))

    async def get_ledger_config(self) -> Optional[LedgerConnection]:
        response = await self._client.table(CONFIG_TABLE).select("*").limit(1).execute()
        if not response.data:
            return None
        return LedgerConnection(**_with_str_id(response.data[0]))

    async def update_ledger_tokens(
        self,
        config_id: Optional[str],
        access_token: str,
        refresh_token: str,
        token_expiry: datetime,
    ) -> None:
        await (
            self._client.table(CONFIG_TABLE)
            .update({
                "access_token": access_token,
                "refresh_token": refresh_token,
                "token_expiry": token_expiry.isoformat(),
            })
            .eq("id", config_id)
            .execute()
        )
