"""LedgerFlow: recurrence, budget monitoring and statistics engine for a personal ledger."""

__version__ = "0.1.0"
