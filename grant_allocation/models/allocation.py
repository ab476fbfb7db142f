"""AllocationRecord and AllocationRun - persisted outputs of a categorization run."""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from .recommendation import Action, Confidence

AllocationStatus = Literal["pending", "approved", "skipped", "submitted", "error"]
RunStatus = Literal["running", "completed", "failed"]


class AllocationRecord(BaseModel):
    """One allocation decision per transaction line.

    Created once per run and never deleted. ``final_class_*`` is what gets
    written to the ledger; users may change it before approval.
    """

    id: Optional[str] = Field(None, description="Store-assigned id")
    run_id: str
    purchase_id: str
    line_id: str
    sync_token: str = ""
    vendor_name: str
    account_name: str
    amount: float
    txn_date: Optional[date] = None
    memo: Optional[str] = None

    suggested_class_id: Optional[str] = None
    suggested_class_name: Optional[str] = None
    suggested_score: Optional[float] = None
    final_class_id: Optional[str] = None
    final_class_name: Optional[str] = None

    confidence: Confidence
    explanation: str = ""
    scoring_detail: Optional[str] = Field(None, description="Serialized ScoringDetail JSON")
    runner_up_class_name: Optional[str] = None
    runner_up_score: Optional[float] = None
    qualifying_grants: Optional[str] = Field(
        None, description="Serialized list of {class_id, class_name, score, pacing, concentration}"
    )

    action: Action
    status: AllocationStatus = "pending"
    error_message: Optional[str] = None
    submitted_at: Optional[datetime] = None


class AllocationRun(BaseModel):
    """One execution of the scoring + recommendation pipeline."""

    id: str
    status: RunStatus
    started_by: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    total_expenses: int = 0
    total_processed: int = 0
    total_submitted: Optional[int] = None
    error_message: Optional[str] = None


class SubmissionSummary(BaseModel):
    """Outcome of one ledger submission pass."""

    submitted: int = 0
    errors: int = 0
    total: int = 0


class AllocationStats(BaseModel):
    """Counts used by the review screen summary cards."""

    total: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    pending: int = 0
    approved: int = 0
    skipped: int = 0
    submitted: int = 0
    errors: int = 0
