"""LLM prompt template and request payload for grant allocation batches.

The model receives pre-filtered, pre-scored expenses and is asked to:
1. Select qualifying_grants[0] unless there is a compelling reason not to
2. Apply one of three deterministic confidence rules
3. Return structured JSON: {"recommendations": [...]}, one entry per expense
"""

from datetime import date
from typing import Any, Dict, List

from ..models import CandidateTransaction, GrantProfile

PARSE_FAILURE_EXPLANATION = "AI response could not be parsed"

SYSTEM_PROMPT = """You assign unclassified nonprofit expenses to grants. Every expense you receive has already been filtered and scored: its "qualifying_grants" list contains only grants that budget for the expense's account and can still absorb its amount, sorted best first with near-ties already rotated.

## WHAT TO DO
For each expense, choose qualifying_grants[0]. Deviate only for a clear reason, and only to another grant from the same list.

## RESPONSE SHAPE
Respond with a single JSON object and nothing else. It must have one key, "recommendations", holding exactly one entry per input expense:

{
  "recommendations": [
    {
      "purchase_id": "string (copied from the expense)",
      "line_id": "string (copied from the expense)",
      "action": "reassign" | "flag_for_review",
      "suggested_class_id": "string" | null,
      "suggested_class_name": "string" | null,
      "confidence": "high" | "medium" | "low",
      "explanation": "one or two sentences",
      "scoring_detail": {
        "selected_grant_score": number,
        "runner_up_grant": "string" | null,
        "runner_up_score": number | null
      }
    }
  ]
}

## CONFIDENCE

No qualifying grants:
- action "flag_for_review", suggested_class_id and suggested_class_name null
- confidence "low", selected_grant_score 0

One qualifying grant:
- action "reassign" to that grant
- confidence by its scores.total: 70 or more is "high", 50 to 69 is "medium", below 50 is "low"
- runner_up_grant and runner_up_score null

Two or more qualifying grants:
- action "reassign" to qualifying_grants[0]
- compare its scores.total with qualifying_grants[1]: a gap above 10 is "high", 5 to 10 is "medium", below 5 is "low"
- runner_up_grant is qualifying_grants[1].class_name, runner_up_score its scores.total

## RULES
- Never suggest a grant that is not in the expense's qualifying_grants.
- Copy class_id and class_name exactly as given.
- Do not skip, merge or add expenses.
- Output valid JSON only, with no commentary."""


def get_system_prompt() -> str:
    """Return the fixed instruction set sent with every batch."""
    return SYSTEM_PROMPT


def build_batch_payload(
    batch: List[CandidateTransaction],
    grants: List[GrantProfile],
    current_date: date,
) -> Dict[str, Any]:
    """Build the JSON request document for one batch.

    Args:
        batch: Scored candidates (qualifying grants already sorted).
        grants: All grant profiles in play for this run.
        current_date: Run date.

    Returns:
        ``{current_date, summary, grants, expenses}`` as JSON-ready dicts.
    """
    total_amount = round(sum(c.amount for c in batch), 2)
    return {
        "current_date": current_date.isoformat(),
        "summary": {
            "total_expenses_to_allocate": len(batch),
            "total_amount": total_amount,
            "available_grants": len(grants),
        },
        "grants": [g.model_dump(mode="json") for g in grants],
        "expenses": [c.model_dump(mode="json") for c in batch],
    }
