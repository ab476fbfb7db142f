"""Shared Pydantic models for the allocation pipeline."""

from .ledger import BudgetLine, LedgerBudget, LedgerLine, LedgerClass, LedgerConnection
from .grant_profile import BudgetCategory, PacingMetrics, GrantProfile
from .candidate import (
    ScoreBreakdown,
    QualifyingGrant,
    GrantConcentration,
    DiversificationContext,
    CandidateTransaction,
)
from .recommendation import ScoringDetail, Recommendation, RecommendationBatch
from .allocation import AllocationRecord, AllocationRun, AllocationStats, SubmissionSummary

__all__ = [
    "BudgetLine",
    "LedgerBudget",
    "LedgerLine",
    "LedgerClass",
    "LedgerConnection",
    "BudgetCategory",
    "PacingMetrics",
    "GrantProfile",
    "ScoreBreakdown",
    "QualifyingGrant",
    "GrantConcentration",
    "DiversificationContext",
    "CandidateTransaction",
    "ScoringDetail",
    "Recommendation",
    "RecommendationBatch",
    "AllocationRecord",
    "AllocationRun",
    "AllocationStats",
    "SubmissionSummary",
]
