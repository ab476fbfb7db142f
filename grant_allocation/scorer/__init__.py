"""Deterministic profile building and four-factor grant scoring."""

from .engine import ScoringContext, score_transaction, score_transactions, select_unclassified_lines
from .profiles import ProfileSet, build_grant_profiles
from .diversification import DiversificationTracker, build_diversification
from .settings import DEFAULT_SETTINGS, AllocationSettings, load_settings

__all__ = [
    "ScoringContext",
    "score_transaction",
    "score_transactions",
    "select_unclassified_lines",
    "ProfileSet",
    "build_grant_profiles",
    "DiversificationTracker",
    "build_diversification",
    "DEFAULT_SETTINGS",
    "AllocationSettings",
    "load_settings",
]
