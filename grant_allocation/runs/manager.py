"""Categorization run lifecycle.

A run goes ``running`` -> ``completed`` | ``failed``. Only one run may be
``running`` at a time. All preflight checks (connection, cached data,
something to categorize) happen before the run row is created, so a
rejected start leaves no trace in the store.
"""

import asyncio
import logging
import time
from datetime import date, datetime, timezone
from typing import List, Optional

from ..adapters.base import LedgerPort, RecommenderPort, StorePort
from ..errors import ConfigError, DataError, RunConflictError
from ..models import AllocationRecord, LedgerLine
from ..models.ledger import parse_budgets, parse_purchase_lines
from ..recommender import Recommender, validate_recommendations
from ..scorer import (
    DEFAULT_SETTINGS,
    AllocationSettings,
    ScoringContext,
    build_diversification,
    build_grant_profiles,
    score_transactions,
    select_unclassified_lines,
)
from ..scorer.profiles import ProfileSet

logger = logging.getLogger(__name__)


class RunManager:
    """Starts categorization runs and records their outcome."""

    def __init__(
        self,
        ledger: LedgerPort,
        recommender: RecommenderPort,
        store: StorePort,
        settings: AllocationSettings = DEFAULT_SETTINGS,
    ):
        self.ledger = ledger
        self.store = store
        self.settings = settings
        self.recommender = Recommender(recommender, settings)
        self._start_lock = asyncio.Lock()

    async def start_run(self, user_id: str, today: Optional[date] = None) -> str:
        """Score, recommend, validate and persist allocations for every
        unclassified expense line.

        Args:
            user_id: Who started the run.
            today: Reference date (defaults to the current UTC date).

        Returns:
            The completed run's id.

        Raises:
            RunConflictError: a run is already in progress.
            ConfigError: the ledger is not connected.
            DataError: cached reports are missing or nothing needs categorizing.
            Exception: anything raised after the run was created is re-raised
                once the run has been marked failed.
        """
        today = today or datetime.now(timezone.utc).date()

        async with self._start_lock:
            running = await self.store.get_running_run()
            if running is not None:
                raise RunConflictError("A categorization run is already in progress")

            if not await self.ledger.is_connected():
                raise ConfigError("QuickBooks not connected")

            profile_set, lines = await self._load_ledger(today)
            unclassified = select_unclassified_lines(lines, profile_set)
            if not unclassified:
                raise DataError("No unclassified expenses found to categorize.")

            run_id = await self.store.create_run(user_id, len(unclassified))

        logger.info(
            f"run_start run_id={run_id} started_by={user_id} expenses={len(unclassified)} "
            f"grants={len(profile_set.profiles)}"
        )
        start = time.monotonic()
        try:
            records = await self._categorize(run_id, unclassified, lines, profile_set, today)
            await self._save(records)
            await self.store.update_run(
                run_id,
                status="completed",
                total_processed=len(records),
                completed_at=datetime.now(timezone.utc),
            )
        except Exception as exc:
            logger.error(f"run_failed run_id={run_id} error={exc}", exc_info=True)
            await self.store.update_run(
                run_id,
                status="failed",
                error_message=str(exc) or type(exc).__name__,
                completed_at=datetime.now(timezone.utc),
            )
            raise

        duration = time.monotonic() - start
        logger.info(
            f"run_complete run_id={run_id} processed={len(records)} duration={duration:.2f}s"
        )
        return run_id

    async def grant_profiles(self, today: Optional[date] = None) -> ProfileSet:
        """Current grant profiles built from the cached reports.

        Raises:
            DataError: cached reports are missing.
        """
        profile_set, _ = await self._load_ledger(today or datetime.now(timezone.utc).date())
        return profile_set

    async def _load_ledger(self, today: date):
        budgets_raw = await self.ledger.get_cached_report("budgets")
        expenses_raw = await self.ledger.get_cached_report("expenses")
        if not budgets_raw or not expenses_raw:
            raise DataError("No cached QB data. Please sync QuickBooks first.")

        budgets = parse_budgets(budgets_raw)
        lines = parse_purchase_lines(expenses_raw)
        profile_set = build_grant_profiles(budgets, lines, today, self.settings)
        return profile_set, lines

    async def _categorize(
        self,
        run_id: str,
        unclassified: List[LedgerLine],
        lines: List[LedgerLine],
        profile_set: ProfileSet,
        today: date,
    ) -> List[AllocationRecord]:
        tracker = build_diversification(lines, profile_set.budgeted_class_ids, today, self.settings)
        context = ScoringContext()
        candidates = score_transactions(unclassified, profile_set, tracker, context)

        recommendations = await self.recommender.recommend(candidates, profile_set.profiles, today)
        records, _ = validate_recommendations(
            run_id, recommendations, candidates, profile_set.profiles
        )
        return records

    async def _save(self, records: List[AllocationRecord]) -> None:
        size = self.settings.save_batch_size
        for start in range(0, len(records), size):
            await self.store.save_allocations(records[start:start + size])
