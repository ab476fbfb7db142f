"""Post-LLM validation and allocation record assembly.

Every recommendation is checked against the deterministic scoring output:

- a reassign to a grant that does not exist (or with no grant at all) is
  invalid
- a reassign for a transaction with no qualifying grants is invalid
- a reassign to a real grant outside the transaction's qualifying list is
  corrected to the top pre-scored grant
- a reassign to a grant with no budget category for the transaction's
  account is invalid

Invalid recommendations are demoted to low-confidence flags and carry no
final grant.
"""

import json
import logging
from typing import Dict, List, Optional, Tuple

from ..errors import ValidationError
from ..models import AllocationRecord, CandidateTransaction, GrantProfile, Recommendation

logger = logging.getLogger(__name__)

CORRECTION_NOTE = " (Corrected: AI selection overridden to top pre-scored grant)"
INVALID_PREFIX = "Failed post-AI validation: "


def check_recommendation(
    rec: Recommendation,
    candidate: CandidateTransaction,
    grants: Dict[str, GrantProfile],
) -> bool:
    """Validate (and possibly correct in place) a single recommendation.

    Returns:
        True if the pick was overridden to the top qualifying grant.

    Raises:
        ValidationError: if the recommendation cannot be accepted.
    """
    if rec.action != "reassign":
        return False

    if not rec.suggested_class_id:
        raise ValidationError("reassign without a grant")
    if rec.suggested_class_id not in grants:
        raise ValidationError(f"unknown grant {rec.suggested_class_id}")

    qualifying_ids = [q.class_id for q in candidate.qualifying_grants]
    if not qualifying_ids:
        raise ValidationError("no grant can absorb this expense")

    corrected = False
    if rec.suggested_class_id not in qualifying_ids:
        top = candidate.qualifying_grants[0]
        logger.warning(
            f"Overriding pick for {candidate.key}: {rec.suggested_class_id} not qualifying, "
            f"using {top.class_id}"
        )
        rec.suggested_class_id = top.class_id
        rec.suggested_class_name = top.class_name
        rec.explanation += CORRECTION_NOTE
        corrected = True

    if grants[rec.suggested_class_id].category_for(candidate.account_name) is None:
        raise ValidationError(
            f"grant {rec.suggested_class_id} has no category for {candidate.account_name}"
        )
    return corrected


def _qualifying_summary(candidate: CandidateTransaction) -> str:
    return json.dumps([
        {
            "class_id": q.class_id,
            "class_name": q.class_name,
            "score": q.scores.total,
            "pacing": q.pacing_status,
            "concentration": q.concentration_pct,
        }
        for q in candidate.qualifying_grants
    ])


def build_record(
    run_id: str,
    rec: Recommendation,
    candidate: CandidateTransaction,
    valid: bool,
) -> AllocationRecord:
    final_id: Optional[str] = rec.suggested_class_id if valid else None
    final_name: Optional[str] = rec.suggested_class_name if valid else None
    detail = rec.scoring_detail

    return AllocationRecord(
        run_id=run_id,
        purchase_id=candidate.purchase_id,
        line_id=candidate.line_id,
        sync_token=candidate.sync_token,
        vendor_name=candidate.vendor_name,
        account_name=candidate.account_name,
        amount=candidate.amount,
        txn_date=candidate.txn_date,
        memo=candidate.description or None,
        suggested_class_id=rec.suggested_class_id,
        suggested_class_name=rec.suggested_class_name,
        suggested_score=detail.selected_grant_score,
        final_class_id=final_id,
        final_class_name=final_name,
        confidence=rec.confidence,
        explanation=rec.explanation,
        scoring_detail=detail.model_dump_json(),
        runner_up_class_name=detail.runner_up_grant,
        runner_up_score=detail.runner_up_score,
        qualifying_grants=_qualifying_summary(candidate),
        action=rec.action,
        status="pending",
    )


def validate_recommendations(
    run_id: str,
    recommendations: List[Recommendation],
    candidates: List[CandidateTransaction],
    grants: List[GrantProfile],
) -> Tuple[List[AllocationRecord], Dict[str, int]]:
    """Validate recommendations and build pending allocation records.

    ``recommendations`` and ``candidates`` are parallel lists.

    Returns:
        (records, counts) where counts has ``valid``, ``corrected`` and
        ``invalid`` totals.
    """
    lookup = {g.class_id: g for g in grants}
    records: List[AllocationRecord] = []
    counts = {"valid": 0, "corrected": 0, "invalid": 0}

    for rec, candidate in zip(recommendations, candidates):
        rec = rec.model_copy(deep=True)
        try:
            if check_recommendation(rec, candidate, lookup):
                counts["corrected"] += 1
            valid = True
            counts["valid"] += 1
        except ValidationError as exc:
            logger.warning(f"Invalid recommendation for {candidate.key}: {exc}")
            rec.action = "flag_for_review"
            rec.confidence = "low"
            rec.suggested_class_id = None
            rec.suggested_class_name = None
            rec.explanation = INVALID_PREFIX + rec.explanation
            valid = False
            counts["invalid"] += 1
        records.append(build_record(run_id, rec, candidate, valid))

    logger.info(
        f"validation_complete valid={counts['valid']} corrected={counts['corrected']} "
        f"invalid={counts['invalid']}"
    )
    return records, counts
