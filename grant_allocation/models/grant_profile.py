"""GrantProfile - per-grant spending profile with pacing metrics."""

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

PacingStatus = Literal["behind_pace", "on_track", "ahead_of_pace"]


class BudgetCategory(BaseModel):
    """One budgeted account within a grant."""

    account_id: str = Field(..., description="QuickBooks account id")
    account_name: str = Field(..., description="Account name used for transaction matching")
    total_budget: float = Field(..., description="Sum of budget lines for this account")
    amount_spent: float = Field(default=0.0, description="Actual classified spend to date")
    remaining_budget: float = Field(..., description="max(0, total_budget - amount_spent)")
    available_after_reserve: float = Field(
        ..., description="max(0, remaining_budget - reserve_buffer)"
    )
    percent_spent: int = Field(default=0, description="Rounded spend percentage")


class PacingMetrics(BaseModel):
    """Spend rate versus elapsed time."""

    percent_time_elapsed: int
    percent_budget_spent: int
    pacing_delta: int
    pacing_status: PacingStatus


class GrantProfile(BaseModel):
    """Normalized spending profile for one grant (QuickBooks class)."""

    class_id: str
    class_name: str
    start_date: date
    end_date: date
    is_current: bool
    is_expired: bool
    remaining_days: int
    percent_time_elapsed: int
    pacing: PacingMetrics
    budget_categories: List[BudgetCategory] = Field(default_factory=list)

    def category_for(self, account_name: str) -> Optional[BudgetCategory]:
        """Return the first category whose account name matches exactly."""
        for category in self.budget_categories:
            if category.account_name == account_name:
                return category
        return None
