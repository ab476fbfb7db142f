"""Batch recommender: sends scored candidates to the LLM and parses the result.

A batch either parses cleanly into exactly one recommendation per candidate,
or every candidate in it is flagged for manual review. There is no partial
acceptance and no automatic retry.
"""

import json
import logging
from datetime import date
from typing import Dict, List

import pydantic

from ..adapters.base import RecommenderPort
from ..errors import ParseError
from ..models import CandidateTransaction, GrantProfile, Recommendation, RecommendationBatch
from ..scorer.settings import DEFAULT_SETTINGS, AllocationSettings
from .prompts import PARSE_FAILURE_EXPLANATION, build_batch_payload, get_system_prompt

logger = logging.getLogger(__name__)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence (```json ... ```), if any."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
    return cleaned.strip()


def parse_recommendations(raw: str, batch: List[CandidateTransaction]) -> List[Recommendation]:
    """Parse a raw model response for ``batch``.

    Returns recommendations in the same order as ``batch``.

    Raises:
        ParseError: if the body is not ``{"recommendations": [...]}`` or the
            entries do not map one-to-one onto the batch's transaction keys.
    """
    try:
        parsed = RecommendationBatch.model_validate_json(strip_code_fences(raw))
    except pydantic.ValidationError as exc:
        raise ParseError(f"Response does not match recommendation schema: {exc.error_count()} errors") from exc

    by_key: Dict[str, Recommendation] = {}
    for rec in parsed.recommendations:
        if rec.key in by_key:
            raise ParseError(f"Duplicate recommendation for {rec.key}")
        by_key[rec.key] = rec

    expected = [c.key for c in batch]
    if set(by_key) != set(expected):
        missing = len(set(expected) - set(by_key))
        unexpected = len(set(by_key) - set(expected))
        raise ParseError(
            f"Recommendations do not match batch (missing={missing}, unexpected={unexpected})"
        )
    return [by_key[key] for key in expected]


def flagged_batch(batch: List[CandidateTransaction]) -> List[Recommendation]:
    """Recommendations sending every transaction in the batch to manual review."""
    return [
        Recommendation(
            purchase_id=c.purchase_id,
            line_id=c.line_id,
            action="flag_for_review",
            suggested_class_id=None,
            suggested_class_name=None,
            confidence="low",
            explanation=PARSE_FAILURE_EXPLANATION,
        )
        for c in batch
    ]


class Recommender:
    """Runs candidates through the LLM in fixed-size batches."""

    def __init__(self, port: RecommenderPort, settings: AllocationSettings = DEFAULT_SETTINGS):
        self.port = port
        self.batch_size = settings.recommendation_batch_size

    async def recommend_batch(
        self,
        batch: List[CandidateTransaction],
        grants: List[GrantProfile],
        current_date: date,
    ) -> List[Recommendation]:
        payload = build_batch_payload(batch, grants, current_date)
        raw = await self.port.complete(get_system_prompt(), json.dumps(payload))
        try:
            return parse_recommendations(raw, batch)
        except ParseError as exc:
            logger.error(f"batch_parse_failed size={len(batch)} error={exc}")
            return flagged_batch(batch)

    async def recommend(
        self,
        candidates: List[CandidateTransaction],
        grants: List[GrantProfile],
        current_date: date,
    ) -> List[Recommendation]:
        """Recommend a grant for every candidate, batch by batch in order.

        Errors from the LLM call itself propagate to the caller.
        """
        recommendations: List[Recommendation] = []
        for start in range(0, len(candidates), self.batch_size):
            batch = candidates[start:start + self.batch_size]
            logger.info(
                f"recommend_batch index={start // self.batch_size} size={len(batch)}"
            )
            recommendations.extend(await self.recommend_batch(batch, grants, current_date))
        return recommendations
