"""Write approved allocations back to the ledger.

Each approved record is submitted on its own: the live purchase is fetched
(for its current SyncToken), only the target line's ClassRef is changed, and
the whole purchase is posted back. A failure marks that record ``error`` and
the loop moves on.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict

from ..adapters.base import LedgerPort, StorePort
from ..errors import DataError, SubmissionError
from ..models import AllocationRecord, SubmissionSummary
from ..models.ledger import EXPENSE_LINE_DETAIL

logger = logging.getLogger(__name__)


def assign_line_class(purchase: Dict[str, Any], allocation: AllocationRecord) -> Dict[str, Any]:
    """Set the ClassRef of the allocation's line in ``purchase`` (in place).

    Raises:
        SubmissionError: if the line is missing or is not an account-based
            expense line.
    """
    for line in purchase.get("Line") or []:
        if str(line.get("Id")) != allocation.line_id:
            continue
        if line.get("DetailType") != EXPENSE_LINE_DETAIL:
            continue
        detail = line.setdefault(EXPENSE_LINE_DETAIL, {})
        detail["ClassRef"] = {
            "value": allocation.final_class_id,
            "name": allocation.final_class_name,
        }
        return purchase
    raise SubmissionError(
        f"Line {allocation.line_id} not found in purchase {allocation.purchase_id}"
    )


class SubmissionPipeline:
    """Submits a run's approved allocations sequentially."""

    def __init__(self, ledger: LedgerPort, store: StorePort):
        self.ledger = ledger
        self.store = store

    async def submit_allocation(self, allocation: AllocationRecord) -> None:
        purchase = await self.ledger.fetch_transaction(allocation.purchase_id)
        assign_line_class(purchase, allocation)
        await self.ledger.update_transaction(purchase)

    async def _record_status(self, allocation: AllocationRecord, status: str, **fields: Any) -> None:
        """Persist a per-allocation outcome without aborting the submission loop."""
        try:
            await self.store.update_allocation_status(allocation.id, status, **fields)
        except Exception as exc:
            logger.error(
                f"status_write_failed allocation_id={allocation.id} status={status} error={exc}",
                exc_info=True,
            )

    async def submit_run(self, run_id: str) -> SubmissionSummary:
        """Submit every approved allocation of ``run_id`` that has a final grant.

        Raises:
            DataError: if there is nothing approved to submit.
        """
        allocations = await self.store.get_allocations(run_id)
        approved = [a for a in allocations if a.status == "approved" and a.final_class_id]
        if not approved:
            raise DataError("No approved allocations to submit")

        logger.info(f"submit_start run_id={run_id} approved={len(approved)}")
        start = time.monotonic()
        summary = SubmissionSummary(total=len(approved))

        try:
            for allocation in approved:
                try:
                    await self.submit_allocation(allocation)
                except Exception as exc:
                    logger.error(
                        f"submit_failed allocation_id={allocation.id} "
                        f"purchase_id={allocation.purchase_id} line_id={allocation.line_id} error={exc}"
                    )
                    summary.errors += 1
                    await self._record_status(
                        allocation, "error", error_message=str(exc) or type(exc).__name__
                    )
                    continue

                # Ledger write succeeded; counted even if the status write fails
                summary.submitted += 1
                await self._record_status(
                    allocation, "submitted", submitted_at=datetime.now(timezone.utc)
                )
        finally:
            await self.store.update_run(run_id, total_submitted=summary.submitted)

        duration = time.monotonic() - start
        logger.info(
            f"submit_complete run_id={run_id} submitted={summary.submitted} "
            f"errors={summary.errors} duration={duration:.2f}s"
        )
        return summary
