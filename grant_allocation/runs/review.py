"""User review actions on a run's allocation records."""

import logging
from typing import List

from ..adapters.base import StorePort
from ..errors import DataError
from ..models import AllocationRecord, AllocationStats

logger = logging.getLogger(__name__)


class ReviewService:
    """Approve, skip and reassign allocations before submission."""

    def __init__(self, store: StorePort):
        self.store = store

    async def _require(self, allocation_id: str) -> AllocationRecord:
        allocation = await self.store.get_allocation(allocation_id)
        if allocation is None:
            raise DataError(f"Allocation not found: {allocation_id}")
        return allocation

    async def approve(self, allocation_id: str) -> None:
        """Approve one allocation. It must already have a final grant."""
        allocation = await self._require(allocation_id)
        if not allocation.final_class_id:
            raise DataError("No final assignment set")
        await self.store.update_allocation(allocation_id, {"status": "approved"})

    async def approve_all_high_confidence(self, run_id: str) -> int:
        """Approve every pending high-confidence allocation with a final grant.

        Returns:
            Number of allocations approved.
        """
        count = 0
        for allocation in await self.store.get_allocations(run_id):
            if (
                allocation.confidence == "high"
                and allocation.status == "pending"
                and allocation.final_class_id
            ):
                await self.store.update_allocation(allocation.id, {"status": "approved"})
                count += 1
        logger.info(f"approve_high_confidence run_id={run_id} approved={count}")
        return count

    async def update_final_assignment(
        self, allocation_id: str, final_class_id: str, final_class_name: str
    ) -> None:
        await self.store.update_allocation(
            allocation_id,
            {"final_class_id": final_class_id, "final_class_name": final_class_name},
        )

    async def bulk_update_assignment(
        self, allocation_ids: List[str], final_class_id: str, final_class_name: str
    ) -> None:
        for allocation_id in allocation_ids:
            await self.update_final_assignment(allocation_id, final_class_id, final_class_name)
        logger.info(f"bulk_reassign count={len(allocation_ids)} class_id={final_class_id}")

    async def reset_to_suggestions(self, run_id: str) -> int:
        """Restore final = suggested and status = pending on non-submitted records.

        Returns:
            Number of records reset.
        """
        count = 0
        for allocation in await self.store.get_allocations(run_id):
            if allocation.status == "submitted":
                continue
            await self.store.update_allocation(
                allocation.id,
                {
                    "final_class_id": allocation.suggested_class_id,
                    "final_class_name": allocation.suggested_class_name,
                    "status": "pending",
                },
            )
            count += 1
        logger.info(f"reset_to_suggestions run_id={run_id} reset={count}")
        return count

    async def skip(self, allocation_id: str) -> None:
        await self.store.update_allocation(allocation_id, {"status": "skipped"})

    async def stats(self, run_id: str) -> AllocationStats:
        allocations = await self.store.get_allocations(run_id)
        stats = AllocationStats(total=len(allocations))
        for allocation in allocations:
            setattr(stats, allocation.confidence, getattr(stats, allocation.confidence) + 1)
            status_field = "errors" if allocation.status == "error" else allocation.status
            setattr(stats, status_field, getattr(stats, status_field) + 1)
        return stats
