"""Integration tests for period statistics and the snapshot cache."""

from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest

from ledgerflow.models import EntryKind
from ledgerflow.services.errors import AggregationFailed, StoreUnavailable
from ledgerflow.services.ledger_service import LedgerService
from ledgerflow.services.ledger_store import LedgerStore
from ledgerflow.services.statistics_service import StatisticsAggregator, percent_change


@pytest.fixture
def aggregator(db_session):
    return StatisticsAggregator(db_session)


@pytest.fixture
def ledger(db_session, aggregator):
    return LedgerService(db_session, aggregator=aggregator)


class TestSummary:
    def test_january_food_scenario(self, aggregator, add_entry, owner_id, food):
        add_entry("40.00", date(2024, 1, 5), category=food)
        add_entry("60.00", date(2024, 1, 20), category=food)

        summary = aggregator.get_summary(owner_id, "2024-01")

        assert summary.total_expense == Decimal("100.00")
        assert summary.total_income == Decimal("0.00")
        assert summary.balance == Decimal("-100.00")
        assert summary.expense_count == 2
        assert summary.category(food.id).percentage == Decimal("100.00")
        assert summary.trend.previous_period == "2023-12"
        assert summary.trend.expense_change is None
        assert summary.trend.income_change is None

    def test_transfers_are_excluded_from_balance(self, aggregator, add_entry, owner_id):
        add_entry(1000, date(2024, 1, 1), kind=EntryKind.INCOME)
        add_entry(400, date(2024, 1, 2))
        add_entry(200, date(2024, 1, 3), kind=EntryKind.TRANSFER)

        summary = aggregator.get_summary(owner_id, "2024-01")

        assert summary.balance == Decimal("600.00")
        assert summary.total_transfer == Decimal("200.00")
        assert summary.transaction_count == 3

    def test_category_percentages_are_per_kind(self, aggregator, add_entry, owner_id, food, rent):
        add_entry(75, date(2024, 1, 1), category=food)
        add_entry(25, date(2024, 1, 2), category=rent)
        add_entry(500, date(2024, 1, 3), kind=EntryKind.INCOME, category=food)

        summary = aggregator.get_summary(owner_id, "2024-01")

        assert summary.category(food.id).percentage == Decimal("75.00")
        assert summary.category(rent.id).percentage == Decimal("25.00")
        assert summary.category(food.id, EntryKind.INCOME).percentage == Decimal("100.00")

    def test_top_categories_tie_break(self, aggregator, add_entry, owner_id, food, rent):
        add_entry(30, date(2024, 1, 1))
        add_entry(30, date(2024, 1, 1), category=rent)
        add_entry(30, date(2024, 1, 1), category=food)
        add_entry(50, date(2024, 1, 2), category=rent)

        summary = aggregator.get_summary(owner_id, "2024-01")

        assert [c.category_id for c in summary.top_categories] == [rent.id, food.id, None]

    def test_top_categories_equal_totals_sorted_by_id(
        self, aggregator, add_entry, owner_id, food, rent
    ):
        add_entry(30, date(2024, 1, 1), category=rent)
        add_entry(30, date(2024, 1, 1), category=food)
        add_entry(30, date(2024, 1, 1))

        summary = aggregator.get_summary(owner_id, "2024-01")

        expected = sorted([food.id, rent.id]) + [None]
        assert [c.category_id for c in summary.top_categories] == expected

    def test_trend_against_previous_period(self, aggregator, add_entry, owner_id):
        add_entry(50, date(2023, 12, 10))
        add_entry(75, date(2024, 1, 10))
        add_entry(200, date(2024, 1, 11), kind=EntryKind.INCOME)

        trend = aggregator.get_summary(owner_id, "2024-01").trend

        assert trend.previous_expense == Decimal("50.00")
        assert trend.expense_change == Decimal("50.00")
        assert trend.income_change is None

    def test_quarter_and_year(self, aggregator, add_entry, owner_id):
        add_entry(10, date(2024, 1, 31))
        add_entry(20, date(2024, 3, 1))
        add_entry(40, date(2024, 4, 1))

        assert aggregator.get_summary(owner_id, "2024-Q1").total_expense == Decimal("30.00")
        assert aggregator.get_summary(owner_id, "2024").total_expense == Decimal("70.00")

    def test_deleted_entries_and_other_owners_ignored(
        self, db_session, aggregator, add_entry, owner_id
    ):
        add_entry(10, date(2024, 1, 5))
        add_entry(99, date(2024, 1, 5), owner=owner_id + 1)
        LedgerStore(db_session).soft_delete(add_entry(20, date(2024, 1, 6)))

        summary = aggregator.get_summary(owner_id, "2024-01")

        assert summary.total_expense == Decimal("10.00")
        assert summary.expense_count == 1

    def test_invalid_period(self, aggregator, owner_id):
        with pytest.raises(ValueError):
            aggregator.get_summary(owner_id, "2024-13")

    def test_percent_change(self):
        assert percent_change(Decimal("150"), Decimal("100")) == Decimal("50.00")
        assert percent_change(Decimal("50"), Decimal("200")) == Decimal("-75.00")
        assert percent_change(Decimal("10"), Decimal("0")) is None


class TestCaching:
    def test_repeated_reads_hit_cache(self, aggregator, add_entry, owner_id):
        add_entry(10, date(2024, 1, 5))

        first = aggregator.get_summary(owner_id, "2024-01")
        second = aggregator.get_summary(owner_id, "2024-01")

        assert second is first
        assert aggregator.cache.stats()["hits"] == 1

    def test_create_then_delete_restores_totals(self, ledger, aggregator, add_entry, owner_id):
        add_entry(10, date(2024, 1, 5))
        before = aggregator.get_summary(owner_id, "2024-01")

        entry = ledger.record_entry(owner_id, "25.50", "expense", date(2024, 1, 10))
        during = aggregator.get_summary(owner_id, "2024-01")
        ledger.delete_entry(entry.id)
        after = aggregator.get_summary(owner_id, "2024-01")

        assert during.total_expense == Decimal("35.50")
        assert after.total_expense == before.total_expense
        assert after.balance == before.balance
        assert after.categories == before.categories
        assert after.version > before.version

    def test_moving_entry_updates_both_periods(self, ledger, aggregator, owner_id):
        entry = ledger.record_entry(owner_id, 40, "expense", date(2024, 1, 31))
        aggregator.get_summary(owner_id, "2024-01")
        aggregator.get_summary(owner_id, "2024-02")

        ledger.edit_entry(entry.id, occurrence_date=date(2024, 2, 1))

        assert aggregator.get_summary(owner_id, "2024-01").total_expense == Decimal("0.00")
        february = aggregator.get_summary(owner_id, "2024-02")
        assert february.total_expense == Decimal("40.00")
        assert february.trend.previous_expense == Decimal("0.00")

    def test_mutation_invalidates_next_period_trend(self, ledger, aggregator, owner_id):
        aggregator.get_summary(owner_id, "2024-02")

        ledger.record_entry(owner_id, 80, "expense", date(2024, 1, 15))

        assert (owner_id, "2024-02") not in aggregator.cache
        assert aggregator.get_summary(owner_id, "2024-02").trend.previous_expense == Decimal(
            "80.00"
        )

    def test_stale_snapshot_detected_by_version(self, db_session, aggregator, add_entry, owner_id):
        add_entry(10, date(2024, 1, 5))
        stale = aggregator.get_summary(owner_id, "2024-01")

        # Written without going through the cache-aware service
        add_entry(5, date(2024, 1, 6))
        fresh = aggregator.get_summary(owner_id, "2024-01")

        assert fresh is not stale
        assert fresh.total_expense == Decimal("15.00")
        assert fresh.version == stale.version + 1

    def test_other_owner_cache_untouched(self, ledger, aggregator, owner_id):
        other = aggregator.get_summary(owner_id + 1, "2024-01")

        ledger.record_entry(owner_id, 10, "expense", date(2024, 1, 5))

        assert aggregator.get_summary(owner_id + 1, "2024-01") is other

    def test_failed_read_is_not_cached(self, aggregator, add_entry, owner_id):
        add_entry(10, date(2024, 1, 5))

        with patch.object(
            aggregator.ledger_store, "list_active_entries", side_effect=StoreUnavailable("down")
        ):
            with pytest.raises(AggregationFailed):
                aggregator.get_summary(owner_id, "2024-01")

        assert (owner_id, "2024-01") not in aggregator.cache
        assert aggregator.get_summary(owner_id, "2024-01").total_expense == Decimal("10.00")
