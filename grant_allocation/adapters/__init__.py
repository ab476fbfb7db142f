"""Ledger, LLM and store ports with their concrete adapters."""

from .base import LedgerPort, RecommenderPort, StorePort
from .quickbooks import QuickBooksLedger
from .anthropic_llm import AnthropicRecommender

__all__ = [
    "LedgerPort",
    "RecommenderPort",
    "StorePort",
    "QuickBooksLedger",
    "AnthropicRecommender",
]
