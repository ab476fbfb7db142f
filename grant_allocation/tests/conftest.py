"""Pytest configuration and fixtures."""

import pytest

from factories import (
    FakeLedger,
    FakeRecommender,
    InMemoryStore,
    budget_detail,
    expense_line,
    qb_budget,
    qb_purchase,
    query_response,
    TODAY,
)


@pytest.fixture
def budgets_report():
    """Two full-year grants budgeting Office Supplies, plus a revenue line."""
    return query_response("Budget", [
        qb_budget("B1", [
            budget_detail("100", "Youth Program", "60", "Office Supplies", 10000),
            budget_detail("100", "Youth Program", "61", "Travel", 2000),
            budget_detail("100", "Youth Program", "40", "4000 Grant Revenue", 50000),
        ]),
        qb_budget("B2", [
            budget_detail("200", "Food Bank", "60", "Office Supplies", 8000),
        ]),
    ])


@pytest.fixture
def expenses_report():
    """One classified line, two unclassified lines and one non-expense line."""
    return query_response("Purchase", [
        qb_purchase("P1", TODAY, "Staples", [
            expense_line("1", "60", "Office Supplies", 500, description="Printer paper"),
            expense_line("2", "61", "Travel", 120),
        ], sync_token="3"),
        qb_purchase("P2", TODAY, "Delta", [
            expense_line("1", "61", "Travel", 300, class_id="100", class_name="Youth Program"),
            expense_line("2", "60", "Office Supplies", 40, detail_type="ItemBasedExpenseLineDetail"),
        ]),
    ])


@pytest.fixture
def ledger(budgets_report, expenses_report):
    return FakeLedger({"budgets": budgets_report, "expenses": expenses_report})


@pytest.fixture
def recommender():
    return FakeRecommender()


@pytest.fixture
def store():
    return InMemoryStore()
