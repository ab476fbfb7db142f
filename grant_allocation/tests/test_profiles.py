"""Tests for grant profile building from ledger budgets and spend."""

from datetime import date

import pytest

from factories import TODAY, YEAR_END, YEAR_START, ledger_line
from grant_allocation.models import BudgetLine, LedgerBudget
from grant_allocation.scorer import AllocationSettings, build_grant_profiles
from grant_allocation.scorer.profiles import (
    _time_metrics,
    actual_spending,
    classify_pacing,
    is_revenue_account,
    round_half_up,
)


def _budget(budget_id, rows, start=YEAR_START, end=YEAR_END) -> LedgerBudget:
    return LedgerBudget(
        budget_id=budget_id,
        start_date=start,
        end_date=end,
        lines=[
            BudgetLine(
                budget_id=budget_id,
                start_date=start,
                end_date=end,
                class_id=class_id,
                class_name=f"Grant {class_id}" if class_id else None,
                account_id=account_id,
                account_name=account_name,
                amount=amount,
            )
            for class_id, account_id, account_name, amount in rows
        ],
    )


class TestHelpers:
    def test_round_half_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(2.49) == 2
        assert round_half_up(-46.5) == -46

    def test_revenue_accounts(self):
        assert is_revenue_account("Program Revenue")
        assert is_revenue_account("4000 Grant Income")
        assert not is_revenue_account("Office Supplies")
        assert not is_revenue_account(None)

    @pytest.mark.parametrize("delta,status", [
        (11, "ahead_of_pace"),
        (10, "on_track"),
        (-15, "on_track"),
        (-16, "behind_pace"),
    ])
    def test_classify_pacing(self, delta, status):
        assert classify_pacing(delta) == status

    def test_time_metrics_mid_year(self):
        total, elapsed, remaining, percent = _time_metrics(YEAR_START, YEAR_END, TODAY)
        assert (total, elapsed, remaining) == (364, 180, 184)
        assert percent == 49

    def test_time_metrics_single_day_budget(self):
        day = date(2025, 6, 30)
        assert _time_metrics(day, day, day)[3] == 100

    def test_time_metrics_clamped(self):
        assert _time_metrics(YEAR_START, YEAR_END, date(2024, 12, 1))[3] == 0
        assert _time_metrics(YEAR_START, YEAR_END, date(2026, 3, 1))[3] == 100

    def test_actual_spending_ignores_unclassified_and_item_lines(self):
        spending = actual_spending([
            ledger_line(class_id="100", amount=200),
            ledger_line(class_id="100", amount=50),
            ledger_line(class_id=None, amount=999),
            ledger_line(class_id="100", amount=999, detail_type="ItemBasedExpenseLineDetail"),
        ])
        assert spending == {"100": {"60": 250}}


class TestBuildGrantProfiles:
    def test_reserve_applied_far_from_end(self):
        budgets = [_budget("B1", [("100", "60", "Office Supplies", 10000)])]
        lines = [ledger_line(class_id="100", amount=2000)]

        result = build_grant_profiles(budgets, lines, TODAY)

        (profile,) = result.profiles
        (category,) = profile.budget_categories
        assert category.remaining_budget == 8000
        assert category.available_after_reserve == 7000
        assert category.percent_spent == 20
        assert profile.remaining_days == 184
        assert profile.is_current
        assert not profile.is_expired

    def test_reserve_released_near_end(self):
        budgets = [_budget("B1", [("100", "60", "Office Supplies", 10000)])]
        lines = [ledger_line(class_id="100", amount=2000)]

        (profile,) = build_grant_profiles(budgets, lines, date(2025, 12, 1)).profiles

        assert profile.remaining_days == 30
        assert profile.budget_categories[0].available_after_reserve == 8000

    def test_pacing_status_from_total_spend(self):
        budgets = [_budget("B1", [("100", "60", "Office Supplies", 1000)])]
        lines = [ledger_line(class_id="100", amount=800)]

        (profile,) = build_grant_profiles(budgets, lines, TODAY).profiles

        assert profile.pacing.percent_time_elapsed == 49
        assert profile.pacing.percent_budget_spent == 80
        assert profile.pacing.pacing_delta == 31
        assert profile.pacing.pacing_status == "ahead_of_pace"

    def test_revenue_and_zero_lines_skipped(self):
        budgets = [_budget("B1", [
            ("100", "40", "4000 Grant Revenue", 50000),
            ("100", "41", "Program Revenue", 1000),
            ("100", "60", "Office Supplies", 0),
            ("100", "61", "Travel", 500),
            (None, "62", "Rent", 900),
        ])]

        result = build_grant_profiles(budgets, [], TODAY)

        (profile,) = result.profiles
        assert [c.account_name for c in profile.budget_categories] == ["Travel"]
        assert result.budgeted_class_ids == {"100"}

    def test_expired_budget_skipped_unless_allowed(self):
        budgets = [_budget("B1", [("100", "60", "Office Supplies", 1000)],
                           start=date(2024, 1, 1), end=date(2024, 12, 31))]

        assert build_grant_profiles(budgets, [], TODAY).profiles == []

        allowed = AllocationSettings(allow_expired_grants=True)
        (profile,) = build_grant_profiles(budgets, [], TODAY, allowed).profiles
        assert profile.is_expired
        assert profile.remaining_days < 0

    def test_fully_spent_grant_dropped_but_still_budgeted(self):
        budgets = [
            _budget("B1", [("100", "60", "Office Supplies", 1000)]),
            _budget("B2", [("200", "60", "Office Supplies", 1000)]),
        ]
        lines = [ledger_line(class_id="100", amount=1000)]

        result = build_grant_profiles(budgets, lines, TODAY)

        assert [p.class_id for p in result.profiles] == ["200"]
        assert result.budgeted_class_ids == {"100", "200"}

    def test_lines_for_same_account_accumulate(self):
        budgets = [
            _budget("B1", [("100", "60", "Office Supplies", 600)]),
            _budget("B2", [("100", "60", "Office Supplies", 400)]),
        ]
        (profile,) = build_grant_profiles(budgets, [], TODAY).profiles
        assert profile.budget_categories[0].total_budget == 1000

    def test_profile_set_lookup(self):
        budgets = [_budget("B1", [("100", "60", "Office Supplies", 1000)])]
        result = build_grant_profiles(budgets, [], TODAY)
        assert set(result.lookup()) == {"100"}
