"""Tests for post-LLM validation and allocation record assembly."""

import json

import pytest

from factories import (
    TODAY,
    make_candidate,
    make_category,
    make_profile,
    make_qualifying,
    pick_top_response,
)
from grant_allocation.models import Recommendation, ScoringDetail
from grant_allocation.recommender import parse_recommendations, validate_recommendations
from grant_allocation.recommender.prompts import build_batch_payload
from grant_allocation.recommender.validator import CORRECTION_NOTE, INVALID_PREFIX

GRANTS = [
    make_profile("100"),
    make_profile("200"),
    make_profile("300", categories=[make_category("Travel")]),
]


def _reassign(class_id, purchase_id="P1", explanation="Best fit"):
    return Recommendation(
        purchase_id=purchase_id,
        line_id="1",
        action="reassign",
        suggested_class_id=class_id,
        suggested_class_name=f"Grant {class_id}" if class_id else None,
        confidence="high",
        explanation=explanation,
        scoring_detail=ScoringDetail(selected_grant_score=80),
    )


def _validate(rec, candidate):
    records, counts = validate_recommendations("run-1", [rec], [candidate], GRANTS)
    return records[0], counts


class TestValidRecommendations:
    def test_valid_pick_sets_final_grant(self):
        candidate = make_candidate(qualifying=[make_qualifying("100", 80), make_qualifying("200", 60)])

        record, counts = _validate(_reassign("100"), candidate)

        assert record.action == "reassign"
        assert record.final_class_id == "100"
        assert record.final_class_name == "Grant 100"
        assert record.status == "pending"
        assert record.explanation == "Best fit"
        assert counts == {"valid": 1, "corrected": 0, "invalid": 0}

    def test_two_grants_78_vs_65_is_high_with_runner_up(self):
        candidate = make_candidate(
            amount=500,
            qualifying=[make_qualifying("100", 78), make_qualifying("200", 65)],
        )
        payload = json.dumps(build_batch_payload([candidate], GRANTS, TODAY))
        recs = parse_recommendations(pick_top_response(payload), [candidate])

        record, _ = _validate(recs[0], candidate)

        assert record.confidence == "high"
        assert record.final_class_id == "100"
        assert record.suggested_score == 78
        assert record.runner_up_class_name == "Grant 200"
        assert record.runner_up_score == 65

    def test_record_fields_come_from_candidate(self):
        candidate = make_candidate(amount=42.5, qualifying=[make_qualifying("100", 80)])

        record, _ = _validate(_reassign("100"), candidate)

        assert record.amount == 42.5
        assert record.vendor_name == "Staples"
        assert record.memo == "Printer paper"
        assert record.txn_date == TODAY
        assert json.loads(record.qualifying_grants) == [{
            "class_id": "100",
            "class_name": "Grant 100",
            "score": 80,
            "pacing": "on_track",
            "concentration": 0,
        }]
        assert json.loads(record.scoring_detail)["selected_grant_score"] == 80

    def test_flag_for_review_passes_through(self):
        rec = Recommendation(
            purchase_id="P1", line_id="1", action="flag_for_review",
            confidence="low", explanation="No qualifying grants",
        )
        record, counts = _validate(rec, make_candidate())

        assert record.action == "flag_for_review"
        assert record.final_class_id is None
        assert record.explanation == "No qualifying grants"
        assert counts["valid"] == 1


class TestCorrection:
    def test_pick_outside_qualifying_list_overridden_to_top(self):
        candidate = make_candidate(qualifying=[make_qualifying("100", 80), make_qualifying("200", 60)])
        rec = _reassign("300")

        # 300 exists but does not budget Office Supplies; the override happens first
        record, counts = _validate(rec, candidate)

        assert record.suggested_class_id == "100"
        assert record.final_class_id == "100"
        assert record.explanation == "Best fit" + CORRECTION_NOTE
        assert counts == {"valid": 1, "corrected": 1, "invalid": 0}
        assert rec.suggested_class_id == "300"

    def test_flag_for_empty_qualifying_list_has_no_grant(self):
        candidate = make_candidate(qualifying=[])
        (rec,) = parse_recommendations(
            pick_top_response(json.dumps(build_batch_payload([candidate], GRANTS, TODAY))),
            [candidate],
        )

        record, _ = _validate(rec, candidate)

        assert record.action == "flag_for_review"
        assert record.suggested_class_id is None
        assert record.final_class_id is None
        assert record.confidence == "low"


class TestInvalid:
    @pytest.mark.parametrize("class_id", ["999", None])
    def test_unknown_or_missing_grant(self, class_id):
        candidate = make_candidate(qualifying=[make_qualifying("100", 80)])

        record, counts = _validate(_reassign(class_id), candidate)

        assert record.action == "flag_for_review"
        assert record.confidence == "low"
        assert record.suggested_class_id is None
        assert record.final_class_id is None
        assert record.explanation.startswith(INVALID_PREFIX)
        assert counts["invalid"] == 1

    def test_reassign_with_no_qualifying_grants(self):
        """A real grant with a matching category still cannot absorb an expense nothing qualified for."""
        candidate = make_candidate(qualifying=[], amount=50000)

        record, counts = _validate(_reassign("100"), candidate)

        assert record.action == "flag_for_review"
        assert record.confidence == "low"
        assert record.suggested_class_id is None
        assert record.final_class_id is None
        assert record.explanation == INVALID_PREFIX + "Best fit"
        assert counts == {"valid": 0, "corrected": 0, "invalid": 1}

    def test_grant_without_matching_category(self):
        candidate = make_candidate(
            account_name="Travel", qualifying=[make_qualifying("100", 80, "Travel")]
        )

        record, _ = _validate(_reassign("100"), candidate)

        assert record.action == "flag_for_review"
        assert record.explanation == INVALID_PREFIX + "Best fit"
        assert record.final_class_id is None

    def test_records_follow_candidate_order(self):
        qualifying = [make_qualifying("100", 80)]
        candidates = [make_candidate("P1", qualifying=qualifying), make_candidate("P2", qualifying=qualifying)]
        recs = [_reassign("100", "P1"), _reassign("999", "P2")]

        records, counts = validate_recommendations("run-1", recs, candidates, GRANTS)

        assert [r.purchase_id for r in records] == ["P1", "P2"]
        assert [r.action for r in records] == ["reassign", "flag_for_review"]
        assert counts == {"valid": 1, "corrected": 0, "invalid": 1}
