"""RunSummaryReporter - plain-text summaries of runs, grants and submissions for the CLI."""

import logging
from typing import List, Optional

from ..adapters.base import StorePort
from ..errors import DataError
from ..models import AllocationRun, AllocationStats, GrantProfile, SubmissionSummary
from ..runs.review import ReviewService

logger = logging.getLogger(__name__)

PACING_LABELS = {
    "behind_pace": "behind pace",
    "on_track": "on track",
    "ahead_of_pace": "ahead of pace",
}


def format_run(run: AllocationRun, stats: AllocationStats) -> str:
    """Render a run header plus confidence/status counts."""
    lines = [
        f"Run {run.id} [{run.status}]",
        f"  Started by {run.started_by} at {run.started_at.isoformat()}",
    ]
    if run.completed_at:
        lines.append(f"  Completed at {run.completed_at.isoformat()}")
    lines.append(f"  Expenses: {run.total_expenses}  Processed: {run.total_processed}")
    if run.total_submitted is not None:
        lines.append(f"  Submitted to ledger: {run.total_submitted}")
    if run.error_message:
        lines.append(f"  Error: {run.error_message}")

    lines.append(
        f"  Confidence: {stats.high} high / {stats.medium} medium / {stats.low} low"
    )
    lines.append(
        f"  Status: {stats.pending} pending, {stats.approved} approved, {stats.skipped} skipped, "
        f"{stats.submitted} submitted, {stats.errors} errors"
    )
    return "\n".join(lines)


def format_grant_profiles(profiles: List[GrantProfile]) -> str:
    """One block per grant: time elapsed, spend and per-category headroom."""
    if not profiles:
        return "No active grant budgets."
    blocks = []
    for grant in profiles:
        pacing = grant.pacing
        header = (
            f"{grant.class_name} ({grant.class_id}) ends {grant.end_date.isoformat()} "
            f"[{grant.remaining_days} days left]"
        )
        detail = (
            f"  {pacing.percent_time_elapsed}% time elapsed, {pacing.percent_budget_spent}% spent, "
            f"{PACING_LABELS.get(pacing.pacing_status, pacing.pacing_status)}"
        )
        categories = [
            f"    {c.account_name}: ${c.remaining_budget:,.2f} of ${c.total_budget:,.2f} remaining "
            f"(${c.available_after_reserve:,.2f} allocatable)"
            for c in grant.budget_categories
        ]
        blocks.append("\n".join([header, detail] + categories))
    return "\n\n".join(blocks)


def format_submission(run_id: str, summary: SubmissionSummary) -> str:
    return (
        f"Run {run_id}: submitted {summary.submitted} of {summary.total} approved allocations "
        f"({summary.errors} errors)"
    )


class RunSummaryReporter:
    """Builds run summaries from the store."""

    def __init__(self, store: StorePort):
        self.store = store

    async def stats(self, run_id: str) -> AllocationStats:
        return await ReviewService(self.store).stats(run_id)

    async def summarize(self, run_id: Optional[str] = None) -> str:
        """Summarize ``run_id``, or the latest run when omitted.

        Raises:
            DataError: if the run does not exist.
        """
        run = await self.store.get_run(run_id) if run_id else await self.store.get_latest_run()
        if run is None:
            raise DataError(f"Run not found: {run_id or 'latest'}")
        logger.info(f"Generating summary for run: {run.id}")
        return format_run(run, await self.stats(run.id))
