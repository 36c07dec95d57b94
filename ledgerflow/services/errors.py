"""Custom exception classes for the ledger engine.

Provides domain-specific exceptions for clear error handling and reporting.
"""


class LedgerFlowError(Exception):
    """Base exception for engine errors."""

    pass


class InvalidRuleConfig(LedgerFlowError, ValueError):
    """Recurring rule configuration rejected at creation or edit time."""

    pass


class InvalidEntry(LedgerFlowError, ValueError):
    """Ledger entry input rejected (non-positive amount, unknown kind, etc.)."""

    pass


class InvalidBudget(LedgerFlowError, ValueError):
    """Budget target or alert threshold outside its allowed range."""

    pass


class MaterializationConflict(LedgerFlowError):
    """Entry for this (rule, occurrence date) already exists.

    Treated as an idempotent success by the recurrence engine.
    """

    def __init__(self, rule_id: int, occurrence_date):
        super().__init__(f"Entry for rule {rule_id} on {occurrence_date} already exists")
        self.rule_id = rule_id
        self.occurrence_date = occurrence_date


class StoreUnavailable(LedgerFlowError):
    """Transient storage failure (connection lost, database locked, etc.)."""

    pass


class CacheInconsistency(LedgerFlowError):
    """Cached snapshot version does not match the current generation counter."""

    pass


class AggregationFailed(LedgerFlowError):
    """Statistics could not be computed; no snapshot was cached."""

    pass


__all__ = [
    "LedgerFlowError",
    "InvalidRuleConfig",
    "InvalidEntry",
    "InvalidBudget",
    "MaterializationConflict",
    "StoreUnavailable",
    "CacheInconsistency",
    "AggregationFailed",
]
