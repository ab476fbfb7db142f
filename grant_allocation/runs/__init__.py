"""Run lifecycle, user review actions and ledger submission."""

from .manager import RunManager
from .review import ReviewService
from .submission import SubmissionPipeline

__all__ = ["RunManager", "ReviewService", "SubmissionPipeline"]
