"""LLM recommendation and post-LLM validation."""

from .engine import Recommender, parse_recommendations, strip_code_fences
from .validator import validate_recommendations

__all__ = ["Recommender", "parse_recommendations", "strip_code_fences", "validate_recommendations"]
