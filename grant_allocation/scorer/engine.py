"""Deterministic four-factor scoring engine for grant allocation.

Each unclassified transaction line is matched against every grant with a
budget category for the line's account and enough reserve-adjusted budget to
absorb it. Matches are scored on four dimensions:

1. Pacing (0-40): favour grants that are behind their spend curve
2. Time urgency (0-25): favour grants close to (or past) their end date
3. Diversification (0-25): favour grants not already concentrated on this
   vendor|account in the recent history window
4. Budget remaining (0-10): favour categories with more headroom

Run-scoped state (batch concentration counts, rotation counter) lives on a
ScoringContext that the caller creates once per run.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..models import (
    BudgetCategory,
    CandidateTransaction,
    DiversificationContext,
    GrantProfile,
    LedgerLine,
    QualifyingGrant,
    ScoreBreakdown,
)
from .diversification import DiversificationTracker
from .profiles import ProfileSet

logger = logging.getLogger(__name__)

TIE_WINDOW_POINTS = 5
BATCH_CONCENTRATION_THRESHOLD_PCT = 50
BATCH_CONCENTRATION_PENALTY = 15


@dataclass
class ScoringContext:
    """Mutable scoring state for a single run.

    Attributes:
        batch_allocations: account_name -> class_id -> number of transactions
            in this run whose top-ranked grant was class_id.
        rotation_counter: Round-robin position for tie-breaks without history.
            Advances once per tie-break that uses it, across all transactions.
    """

    batch_allocations: Dict[str, Dict[str, int]] = field(default_factory=dict)
    rotation_counter: int = 0

    def batch_share_pct(self, account_name: str, class_id: str) -> Optional[float]:
        """Share of this account's in-run selections that went to class_id."""
        counts = self.batch_allocations.get(account_name, {})
        total = sum(counts.values())
        if total <= 0:
            return None
        return counts.get(class_id, 0) / total * 100

    def record_selection(self, account_name: str, class_id: str) -> None:
        counts = self.batch_allocations.setdefault(account_name, {})
        counts[class_id] = counts.get(class_id, 0) + 1

    def next_rotation_index(self, tied_count: int) -> int:
        index = self.rotation_counter % tied_count
        self.rotation_counter += 1
        return index


def score_pacing(pacing_status: str) -> int:
    if pacing_status == "behind_pace":
        return 40
    if pacing_status == "on_track":
        return 25
    if pacing_status == "ahead_of_pace":
        return 5
    return 0


def score_time(is_expired: bool, remaining_days: int) -> int:
    if is_expired or remaining_days <= 60:
        return 25
    if remaining_days <= 120:
        return 15
    return 5


def score_diversification(concentration_pct: Optional[float]) -> int:
    """Score recent concentration; no history for this grant scores full marks."""
    if concentration_pct is None:
        return 25
    if concentration_pct < 30:
        return 25
    if concentration_pct <= 50:
        return 15
    if concentration_pct <= 70:
        return 5
    return 0


def score_budget(category: BudgetCategory) -> int:
    if category.total_budget <= 0:
        return 2
    pct_remaining = category.remaining_budget / category.total_budget * 100
    if pct_remaining > 50:
        return 10
    if pct_remaining >= 25:
        return 5
    return 2


def score_grant(
    grant: GrantProfile,
    category: BudgetCategory,
    diversification: Optional[DiversificationContext],
) -> QualifyingGrant:
    """Score one grant/category match for a transaction."""
    concentration = None
    if diversification is not None:
        entry = diversification.concentration_by_grant.get(grant.class_id)
        if entry is not None:
            concentration = entry.percent

    scores = ScoreBreakdown(
        s1_pacing=score_pacing(grant.pacing.pacing_status),
        s2_time=score_time(grant.is_expired, grant.remaining_days),
        s3_diversification=score_diversification(concentration),
        s4_budget=score_budget(category),
        total=0,
    )
    scores.recompute_total()

    return QualifyingGrant(
        class_id=grant.class_id,
        class_name=grant.class_name,
        matching_category=category,
        scores=scores,
        pacing_status=grant.pacing.pacing_status,
        is_expired=grant.is_expired,
        concentration_pct=concentration or 0,
    )


def find_qualifying_grants(
    line: LedgerLine,
    profiles: List[GrantProfile],
    diversification: Optional[DiversificationContext],
) -> List[QualifyingGrant]:
    """Score every grant whose matching category can absorb the line's amount."""
    qualifying = []
    for grant in profiles:
        category = grant.category_for(line.account_name)
        if category is None:
            continue
        if category.available_after_reserve < line.amount:
            continue
        qualifying.append(score_grant(grant, category, diversification))
    return qualifying


def apply_pacing_constraint(grants: List[QualifyingGrant]) -> List[QualifyingGrant]:
    """Drop ahead-of-pace grants whenever any other grant qualifies."""
    not_ahead = [g for g in grants if g.pacing_status != "ahead_of_pace"]
    return not_ahead if not_ahead else grants


def apply_batch_penalty(
    grants: List[QualifyingGrant],
    account_name: str,
    context: ScoringContext,
) -> None:
    """Penalize grants already holding most of this account's in-run selections."""
    for grant in grants:
        share = context.batch_share_pct(account_name, grant.class_id)
        if share is not None and share > BATCH_CONCENTRATION_THRESHOLD_PCT:
            grant.scores.s3_diversification = max(
                0, grant.scores.s3_diversification - BATCH_CONCENTRATION_PENALTY
            )
            grant.scores.recompute_total()


def rank_grants(
    grants: List[QualifyingGrant],
    diversification: Optional[DiversificationContext],
    context: ScoringContext,
) -> List[QualifyingGrant]:
    """Sort by total score and rotate among near-ties.

    Grants within TIE_WINDOW_POINTS of the top score are treated as tied.
    With history, the best tied grant other than the last one used moves to
    the front; without, the context's round-robin counter picks one.
    """
    ranked = sorted(grants, key=lambda g: g.scores.total, reverse=True)
    if len(ranked) <= 1:
        return ranked

    top_score = ranked[0].scores.total
    tied = [g for g in ranked if abs(g.scores.total - top_score) <= TIE_WINDOW_POINTS]
    if len(tied) <= 1:
        return ranked

    last_used = diversification.last_grant_used_for_this_vendor_account if diversification else None
    if last_used:
        selected = next((g for g in tied if g.class_id != last_used), None)
    else:
        selected = tied[context.next_rotation_index(len(tied))]

    if selected is not None and selected is not ranked[0]:
        ranked.remove(selected)
        ranked.insert(0, selected)
    return ranked


def is_unclassified(line: LedgerLine, budgeted_class_ids: Set[str]) -> bool:
    """Expense lines with no class, or a class that carries no budget."""
    if not line.is_expense_line:
        return False
    return not line.class_id or line.class_id not in budgeted_class_ids


def select_unclassified_lines(lines: List[LedgerLine], profile_set: ProfileSet) -> List[LedgerLine]:
    return [line for line in lines if is_unclassified(line, profile_set.budgeted_class_ids)]


def score_transaction(
    line: LedgerLine,
    profiles: List[GrantProfile],
    tracker: DiversificationTracker,
    context: ScoringContext,
) -> CandidateTransaction:
    """Score one unclassified line and record its top grant on the context."""
    diversification = tracker.context_for(line.vendor_name, line.account_name)

    qualifying = find_qualifying_grants(line, profiles, diversification)
    qualifying = apply_pacing_constraint(qualifying)
    apply_batch_penalty(qualifying, line.account_name, context)
    ranked = rank_grants(qualifying, diversification, context)

    if ranked:
        context.record_selection(line.account_name, ranked[0].class_id)

    return CandidateTransaction(
        purchase_id=line.purchase_id,
        line_id=line.line_id,
        sync_token=line.sync_token,
        txn_date=line.txn_date,
        vendor_name=line.vendor_name,
        description=line.description,
        amount=round(line.amount, 2),
        account_id=line.account_id,
        account_name=line.account_name,
        current_class=line.class_name or "Unassigned",
        qualifying_grants=ranked,
        diversification_context=diversification,
    )


def score_transactions(
    lines: List[LedgerLine],
    profile_set: ProfileSet,
    tracker: DiversificationTracker,
    context: ScoringContext,
) -> List[CandidateTransaction]:
    """Score lines in ledger order.

    Order matters: batch penalties and rotation depend on the selections made
    for earlier lines in the same run.
    """
    candidates = [
        score_transaction(line, profile_set.profiles, tracker, context)
        for line in lines
    ]
    with_grants = sum(1 for c in candidates if c.qualifying_grants)
    logger.info(
        f"Scored {len(candidates)} unclassified lines: {with_grants} with qualifying grants, "
        f"{len(candidates) - with_grants} without"
    )
    return candidates
