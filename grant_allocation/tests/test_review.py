"""Tests for user review actions and run stats."""

import pytest

from factories import make_allocation
from grant_allocation.errors import DataError
from grant_allocation.runs import ReviewService


@pytest.fixture
def review(store):
    store.add(make_allocation("a", confidence="high"))
    store.add(make_allocation("b", confidence="high", final_class_id=None, suggested_class_id=None))
    store.add(make_allocation("c", confidence="medium"))
    store.add(make_allocation("d", confidence="high", status="submitted"))
    store.add(make_allocation("e", confidence="low", status="skipped"))
    store.add(make_allocation("x", run_id="run-2", confidence="high"))
    return ReviewService(store)


class TestApprove:
    @pytest.mark.asyncio
    async def test_approve_requires_final_grant(self, review, store):
        await review.approve("a")
        assert store.allocations["a"].status == "approved"

        with pytest.raises(DataError, match="No final assignment"):
            await review.approve("b")
        assert store.allocations["b"].status == "pending"

    @pytest.mark.asyncio
    async def test_approve_unknown_allocation(self, review):
        with pytest.raises(DataError, match="not found"):
            await review.approve("missing")

    @pytest.mark.asyncio
    async def test_approve_all_high_confidence(self, review, store):
        count = await review.approve_all_high_confidence("run-1")

        assert count == 1
        assert store.allocations["a"].status == "approved"
        assert store.allocations["b"].status == "pending"
        assert store.allocations["c"].status == "pending"
        assert store.allocations["d"].status == "submitted"
        assert store.allocations["x"].status == "pending"


class TestAssignments:
    @pytest.mark.asyncio
    async def test_update_final_assignment(self, review, store):
        await review.update_final_assignment("b", "200", "Grant 200")

        assert store.allocations["b"].final_class_id == "200"
        assert store.allocations["b"].suggested_class_id is None

    @pytest.mark.asyncio
    async def test_bulk_update(self, review, store):
        await review.bulk_update_assignment(["a", "c"], "300", "Grant 300")

        assert store.allocations["a"].final_class_name == "Grant 300"
        assert store.allocations["c"].final_class_id == "300"
        assert store.allocations["b"].final_class_id is None

    @pytest.mark.asyncio
    async def test_skip(self, review, store):
        await review.skip("c")
        assert store.allocations["c"].status == "skipped"


class TestResetToSuggestions:
    @pytest.mark.asyncio
    async def test_restores_suggestions_and_pending(self, review, store):
        await review.update_final_assignment("a", "200", "Grant 200")
        await review.approve("a")
        await review.skip("c")

        count = await review.reset_to_suggestions("run-1")

        assert count == 4
        assert store.allocations["a"].final_class_id == "100"
        assert store.allocations["a"].status == "pending"
        assert store.allocations["c"].status == "pending"
        assert store.allocations["e"].status == "pending"

    @pytest.mark.asyncio
    async def test_submitted_untouched(self, review, store):
        store.allocations["d"] = store.allocations["d"].model_copy(update={"final_class_id": "200"})

        await review.reset_to_suggestions("run-1")

        assert store.allocations["d"].status == "submitted"
        assert store.allocations["d"].final_class_id == "200"

    @pytest.mark.asyncio
    async def test_idempotent(self, review, store):
        await review.bulk_update_assignment(["a", "c"], "300", "Grant 300")

        await review.reset_to_suggestions("run-1")
        first = {k: v.model_dump() for k, v in store.allocations.items()}
        await review.reset_to_suggestions("run-1")
        second = {k: v.model_dump() for k, v in store.allocations.items()}

        assert first == second


class TestStats:
    @pytest.mark.asyncio
    async def test_counts_by_confidence_and_status(self, review, store):
        await review.approve("a")
        await store.update_allocation_status("c", "error", error_message="QB update error: 400")

        stats = await review.stats("run-1")

        assert stats.total == 5
        assert (stats.high, stats.medium, stats.low) == (3, 1, 1)
        assert stats.approved == 1
        assert stats.pending == 1
        assert stats.errors == 1
        assert stats.submitted == 1
        assert stats.skipped == 1
