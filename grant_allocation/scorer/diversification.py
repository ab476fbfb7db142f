"""Sliding-window diversification tracker.

Records, per ``vendor|account`` key, which budgeted grants recent spend was
charged to. Concentration percentages are derived from the per-grant totals
on read.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional, Set

from ..models import DiversificationContext, GrantConcentration, LedgerLine
from .profiles import round_half_up
from .settings import DEFAULT_SETTINGS, AllocationSettings

logger = logging.getLogger(__name__)


def rotation_key(vendor_name: str, account_name: str) -> str:
    return f"{vendor_name}|{account_name}"


@dataclass
class DiversificationState:
    """Running history for one vendor|account key."""

    last_grant_used: Optional[str] = None
    grants_used: List[str] = field(default_factory=list)
    total_by_grant: Dict[str, float] = field(default_factory=dict)
    allocation_count: int = 0

    def record(self, class_id: str, amount: float) -> None:
        self.last_grant_used = class_id
        if class_id not in self.grants_used:
            self.grants_used.append(class_id)
        self.total_by_grant[class_id] = self.total_by_grant.get(class_id, 0.0) + amount
        self.allocation_count += 1

    def concentration_by_grant(self) -> Dict[str, GrantConcentration]:
        """Per-grant amount and whole-number share of this key's total."""
        total_for_key = sum(self.total_by_grant.values())
        return {
            class_id: GrantConcentration(
                amount=amount,
                percent=round_half_up(amount / total_for_key * 100) if total_for_key > 0 else 0,
            )
            for class_id, amount in self.total_by_grant.items()
        }

    def to_context(self) -> DiversificationContext:
        return DiversificationContext(
            last_grant_used_for_this_vendor_account=self.last_grant_used,
            grants_already_used=list(self.grants_used),
            concentration_by_grant=self.concentration_by_grant(),
            total_recent_allocations=self.allocation_count,
        )


class DiversificationTracker:
    """Keyed diversification history built from recent classified spend."""

    def __init__(self) -> None:
        self._states: Dict[str, DiversificationState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def record(self, vendor_name: str, account_name: str, class_id: str, amount: float) -> None:
        key = rotation_key(vendor_name, account_name)
        self._states.setdefault(key, DiversificationState()).record(class_id, amount)

    def state_for(self, vendor_name: str, account_name: str) -> Optional[DiversificationState]:
        return self._states.get(rotation_key(vendor_name, account_name))

    def context_for(self, vendor_name: str, account_name: str) -> Optional[DiversificationContext]:
        """Diversification context for a transaction, or None if no history."""
        state = self.state_for(vendor_name, account_name)
        return state.to_context() if state else None


def build_diversification(
    lines: List[LedgerLine],
    budgeted_class_ids: Set[str],
    today: date,
    settings: AllocationSettings = DEFAULT_SETTINGS,
) -> DiversificationTracker:
    """Build the tracker from lines inside the trailing history window.

    Only account-based expense lines already charged to a budgeted grant and
    dated on or after ``today - allocation_history_window_days`` count.
    Lines are applied in ledger order, so ``last_grant_used`` is the grant of
    the last qualifying line seen.
    """
    window_start = today - timedelta(days=settings.allocation_history_window_days)
    tracker = DiversificationTracker()

    for line in lines:
        if not line.is_expense_line:
            continue
        if not line.class_id or not line.account_id:
            continue
        if line.txn_date < window_start:
            continue
        if line.class_id not in budgeted_class_ids:
            continue
        tracker.record(line.vendor_name, line.account_name, line.class_id, line.amount)

    logger.info(
        f"Diversification history: {len(tracker)} vendor|account keys "
        f"since {window_start.isoformat()}"
    )
    return tracker
