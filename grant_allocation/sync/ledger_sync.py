"""QuickBooks report sync into the ledger cache.

Pulls active budgets, this year's purchases and the class list, and replaces
the cached blob for each report type. Categorization runs only ever read
these cached copies.
"""

import json
import logging
import time
from datetime import date, datetime, timezone
from typing import Dict, Optional

from ..adapters.base import adapter_retry
from ..adapters.quickbooks import QuickBooksLedger
from ..models.ledger import parse_budgets, parse_classes, parse_purchase_lines

logger = logging.getLogger(__name__)

BUDGETS_QUERY = "SELECT * FROM Budget WHERE Active = true MAXRESULTS 1000"
CLASSES_QUERY = "SELECT * FROM Class MAXRESULTS 1000"


def purchases_query(start: date, end: date) -> str:
    return (
        f"SELECT * FROM Purchase WHERE TxnDate >= '{start.isoformat()}' "
        f"AND TxnDate <= '{end.isoformat()}' MAXRESULTS 1000"
    )


class LedgerSync:
    """Refreshes the cached ``budgets``, ``expenses`` and ``classes`` reports."""

    def __init__(self, ledger: QuickBooksLedger, store):
        self.ledger = ledger
        self.store = store

    @adapter_retry()
    async def _query(self, statement: str) -> Dict:
        return await self.ledger.query(statement)

    async def sync_report(
        self,
        report_type: str,
        statement: str,
        period_start: Optional[str] = None,
        period_end: Optional[str] = None,
    ) -> str:
        data = json.dumps(await self._query(statement))
        await self.store.cache_report(report_type, data, period_start, period_end)
        return data

    async def sync_all(self, today: Optional[date] = None) -> bool:
        """Sync every report.

        Returns:
            False when the ledger is not connected (nothing synced).
        """
        if not await self.ledger.is_connected():
            logger.info("sync_skipped reason=not_connected")
            return False

        today = today or datetime.now(timezone.utc).date()
        year_start = date(today.year, 1, 1)
        start = time.monotonic()

        budgets = await self.sync_report("budgets", BUDGETS_QUERY)
        expenses = await self.sync_report(
            "expenses",
            purchases_query(year_start, today),
            year_start.isoformat(),
            today.isoformat(),
        )
        classes = await self.sync_report("classes", CLASSES_QUERY)

        duration = time.monotonic() - start
        logger.info(
            f"sync_complete budgets={len(parse_budgets(budgets))} "
            f"purchase_lines={len(parse_purchase_lines(expenses))} "
            f"classes={len(parse_classes(classes))} duration={duration:.2f}s"
        )
        return True
