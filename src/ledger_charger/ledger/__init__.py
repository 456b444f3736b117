"""Ledger service adapters."""

from .base import LedgerBase, build_unpaid_filter
from .airtable import AirtableLedger, AIRTABLE_API_URL
from .memory import InMemoryLedger

__all__ = [
    "LedgerBase",
    "build_unpaid_filter",
    "AirtableLedger",
    "AIRTABLE_API_URL",
    "InMemoryLedger",
]
