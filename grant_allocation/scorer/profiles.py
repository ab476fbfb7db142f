"""Grant profile builder.

Turns parsed budgets and purchase lines into per-grant spending profiles:
time elapsed, actual spend per budgeted account, reserve-adjusted availability
and a pacing status comparing the two.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Set

from ..models import BudgetCategory, GrantProfile, LedgerBudget, LedgerLine, PacingMetrics
from .settings import DEFAULT_SETTINGS, AllocationSettings

logger = logging.getLogger(__name__)


@dataclass
class _CategoryTotals:
    account_id: str
    account_name: str
    total_budget: float = 0.0


@dataclass
class _GrantBudget:
    class_id: str
    class_name: str
    start_date: date
    end_date: date
    is_current: bool
    remaining_days: int
    percent_time_elapsed: int
    categories: Dict[str, _CategoryTotals] = field(default_factory=dict)


@dataclass
class ProfileSet:
    """Result of profile building.

    Attributes:
        profiles: Grants with at least one category that still has budget.
        budgeted_class_ids: Every class id that carries a (non-revenue,
            non-zero) budget line, whether or not its profile survived.
    """

    profiles: List[GrantProfile]
    budgeted_class_ids: Set[str]

    def lookup(self) -> Dict[str, GrantProfile]:
        return {p.class_id: p for p in self.profiles}


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up."""
    return int(math.floor(value + 0.5))


def is_revenue_account(account_name: Optional[str]) -> bool:
    """Revenue accounts are named '...Revenue...' or numbered in the 4xxx range."""
    if not account_name:
        return False
    return "Revenue" in account_name or account_name.startswith("4")


def classify_pacing(
    pacing_delta: float,
    settings: AllocationSettings = DEFAULT_SETTINGS,
) -> str:
    """Map spend-vs-time delta to a pacing status."""
    if pacing_delta > settings.overspend_tolerance_pct:
        return "ahead_of_pace"
    if pacing_delta < -settings.underspend_tolerance_pct:
        return "behind_pace"
    return "on_track"


def _time_metrics(start: date, end: date, today: date) -> tuple[int, int, int, int]:
    total_days = (end - start).days
    elapsed_days = (today - start).days
    remaining_days = (end - today).days
    if total_days <= 0:
        percent = 100.0
    else:
        percent = min(100.0, max(0.0, elapsed_days / total_days * 100))
    return total_days, elapsed_days, remaining_days, round_half_up(percent)


def actual_spending(lines: List[LedgerLine]) -> Dict[str, Dict[str, float]]:
    """Sum classified expense-line amounts per (class_id, account_id)."""
    spending: Dict[str, Dict[str, float]] = {}
    for line in lines:
        if not line.is_expense_line:
            continue
        if not line.class_id or not line.account_id:
            continue
        by_account = spending.setdefault(line.class_id, {})
        by_account[line.account_id] = by_account.get(line.account_id, 0.0) + line.amount
    return spending


def build_grant_profiles(
    budgets: List[LedgerBudget],
    lines: List[LedgerLine],
    today: date,
    settings: AllocationSettings = DEFAULT_SETTINGS,
) -> ProfileSet:
    """Build pacing-aware grant profiles.

    Args:
        budgets: Parsed ledger budgets.
        lines: Parsed purchase lines (all detail types; filtered here).
        today: Reference date for time-elapsed calculations.
        settings: Tolerances and reserve policy.

    Returns:
        ProfileSet with profiles in first-seen order.
    """
    grant_budgets: Dict[str, _GrantBudget] = {}
    budgeted_class_ids: Set[str] = set()

    for budget in budgets:
        if not budget.lines:
            continue

        _, _, remaining_days, percent_elapsed = _time_metrics(
            budget.start_date, budget.end_date, today
        )
        if not settings.allow_expired_grants and remaining_days < 0:
            logger.debug(f"Skipping expired budget {budget.budget_id} (ended {budget.end_date})")
            continue

        is_current = budget.start_date <= today <= budget.end_date

        for detail in budget.lines:
            if not detail.class_id:
                continue
            if is_revenue_account(detail.account_name):
                continue
            if detail.amount == 0:
                continue

            budgeted_class_ids.add(detail.class_id)

            grant = grant_budgets.get(detail.class_id)
            if grant is None:
                grant = _GrantBudget(
                    class_id=detail.class_id,
                    class_name=detail.class_name or detail.class_id,
                    start_date=budget.start_date,
                    end_date=budget.end_date,
                    is_current=is_current,
                    remaining_days=remaining_days,
                    percent_time_elapsed=percent_elapsed,
                )
                grant_budgets[detail.class_id] = grant

            account_id = detail.account_id or ""
            category = grant.categories.get(account_id)
            if category is None:
                category = _CategoryTotals(
                    account_id=account_id,
                    account_name=detail.account_name or "",
                )
                grant.categories[account_id] = category
            category.total_budget += detail.amount

    spending = actual_spending(lines)

    profiles: List[GrantProfile] = []
    for grant in grant_budgets.values():
        profile = _build_profile(grant, spending.get(grant.class_id, {}), settings)
        if profile.budget_categories:
            profiles.append(profile)
        else:
            logger.debug(f"Dropping grant {grant.class_id}: no category with remaining budget")

    logger.info(
        f"Built {len(profiles)} grant profiles from {len(budgets)} budgets "
        f"({len(budgeted_class_ids)} budgeted classes)"
    )
    return ProfileSet(profiles=profiles, budgeted_class_ids=budgeted_class_ids)


def _build_profile(
    grant: _GrantBudget,
    class_spending: Dict[str, float],
    settings: AllocationSettings,
) -> GrantProfile:
    total_budget = 0.0
    total_spent = 0.0
    buffer_active = grant.remaining_days > settings.buffer_release_days_before_end

    categories: List[BudgetCategory] = []
    for cat in grant.categories.values():
        spent = class_spending.get(cat.account_id, 0.0)
        remaining = max(0.0, cat.total_budget - spent)
        total_budget += cat.total_budget
        total_spent += spent

        reserve_buffer = (
            cat.total_budget * (settings.min_remaining_buffer_pct / 100) if buffer_active else 0.0
        )
        percent_spent = (
            round_half_up(spent / cat.total_budget * 100) if cat.total_budget > 0 else 0
        )
        category = BudgetCategory(
            account_id=cat.account_id,
            account_name=cat.account_name,
            total_budget=round(cat.total_budget, 2),
            amount_spent=round(spent, 2),
            remaining_budget=round(remaining, 2),
            available_after_reserve=round(max(0.0, remaining - reserve_buffer), 2),
            percent_spent=percent_spent,
        )
        if category.remaining_budget > 0:
            categories.append(category)

    percent_budget_spent = total_spent / total_budget * 100 if total_budget > 0 else 0.0
    pacing_delta = percent_budget_spent - grant.percent_time_elapsed

    return GrantProfile(
        class_id=grant.class_id,
        class_name=grant.class_name,
        start_date=grant.start_date,
        end_date=grant.end_date,
        is_current=grant.is_current,
        is_expired=grant.remaining_days < 0,
        remaining_days=grant.remaining_days,
        percent_time_elapsed=grant.percent_time_elapsed,
        pacing=PacingMetrics(
            percent_time_elapsed=grant.percent_time_elapsed,
            percent_budget_spent=round_half_up(percent_budget_spent),
            pacing_delta=round_half_up(pacing_delta),
            pacing_status=classify_pacing(pacing_delta, settings),
        ),
        budget_categories=categories,
    )
