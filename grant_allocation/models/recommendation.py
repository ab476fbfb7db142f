"""Recommendation - one LLM decision for a candidate transaction."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Action = Literal["reassign", "flag_for_review"]
Confidence = Literal["high", "medium", "low"]


class ScoringDetail(BaseModel):
    selected_grant_score: float = 0
    runner_up_grant: Optional[str] = None
    runner_up_score: Optional[float] = None


class Recommendation(BaseModel):
    """Recommendation as returned by the model (extra echo fields ignored)."""

    purchase_id: str
    line_id: str
    action: Action
    suggested_class_id: Optional[str] = None
    suggested_class_name: Optional[str] = None
    confidence: Confidence
    explanation: str = ""
    scoring_detail: ScoringDetail = Field(default_factory=ScoringDetail)

    @property
    def key(self) -> str:
        return f"{self.purchase_id}-{self.line_id}"


class RecommendationBatch(BaseModel):
    """Top-level shape the model must return."""

    recommendations: List[Recommendation]
