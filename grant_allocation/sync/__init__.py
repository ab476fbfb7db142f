"""Scheduled QuickBooks report sync."""

from .ledger_sync import LedgerSync

__all__ = ["LedgerSync"]
