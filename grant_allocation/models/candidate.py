"""Scored candidate transactions handed to the recommender."""

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .grant_profile import BudgetCategory, PacingStatus


class ScoreBreakdown(BaseModel):
    """Four-factor score. ``total`` is always the sum of the components."""

    s1_pacing: int = Field(..., ge=0, le=40)
    s2_time: int = Field(..., ge=0, le=25)
    s3_diversification: int = Field(..., ge=0, le=25)
    s4_budget: int = Field(..., ge=0, le=10)
    total: int = Field(..., ge=0, le=100)

    def recompute_total(self) -> None:
        self.total = self.s1_pacing + self.s2_time + self.s3_diversification + self.s4_budget


class QualifyingGrant(BaseModel):
    """A grant whose matching category can absorb the transaction."""

    class_id: str
    class_name: str
    matching_category: BudgetCategory
    scores: ScoreBreakdown
    pacing_status: PacingStatus
    is_expired: bool
    concentration_pct: int = 0


class GrantConcentration(BaseModel):
    amount: float
    percent: int


class DiversificationContext(BaseModel):
    """Recent allocation history for the transaction's vendor|account key."""

    last_grant_used_for_this_vendor_account: Optional[str] = None
    grants_already_used: List[str] = Field(default_factory=list)
    concentration_by_grant: Dict[str, GrantConcentration] = Field(default_factory=dict)
    total_recent_allocations: int = 0


class CandidateTransaction(BaseModel):
    """An unclassified ledger line with its ranked qualifying grants."""

    purchase_id: str
    line_id: str
    sync_token: str
    txn_date: date
    vendor_name: str
    description: str = ""
    amount: float
    account_id: str
    account_name: str
    current_class: str = "Unassigned"
    qualifying_grants: List[QualifyingGrant] = Field(default_factory=list)
    diversification_context: Optional[DiversificationContext] = None

    @property
    def key(self) -> str:
        return f"{self.purchase_id}-{self.line_id}"
