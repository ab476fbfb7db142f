"""Grant expense allocation: score unclassified ledger expenses against grant
budgets, get LLM-confirmed recommendations, and write approved grants back to
QuickBooks."""

__version__ = "0.1.0"
