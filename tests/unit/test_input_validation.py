"""Unit tests for entry and recurring rule input validation."""

from datetime import date
from decimal import Decimal

import pytest

from ledgerflow.models import EntryKind, Frequency
from ledgerflow.services.errors import InvalidEntry, InvalidRuleConfig, LedgerFlowError
from ledgerflow.services.ledger_service import normalize_amount, normalize_tags
from ledgerflow.services.recurring_service import validate_rule_config


class TestNormalizeAmount:
    def test_signed_expense_becomes_magnitude(self):
        assert normalize_amount("-12.50", "expense") == (Decimal("12.50"), EntryKind.EXPENSE)

    def test_income_kept_positive(self):
        assert normalize_amount(3000, EntryKind.INCOME) == (Decimal("3000"), EntryKind.INCOME)

    @pytest.mark.parametrize(
        "amount,kind",
        [(0, "expense"), ("abc", "expense"), (-5, "income"), (10, "refund")],
    )
    def test_rejected(self, amount, kind):
        with pytest.raises(InvalidEntry):
            normalize_amount(amount, kind)

    def test_invalid_entry_is_a_value_error(self):
        with pytest.raises(ValueError):
            normalize_amount(0, "expense")


class TestNormalizeTags:
    def test_strips_deduplicates_and_sorts(self):
        assert normalize_tags([" b", "a", "b ", "", "  "]) == ["a", "b"]

    def test_none(self):
        assert normalize_tags(None) == []


class TestValidateRuleConfig:
    def test_valid_monthly(self):
        amount, kind, frequency = validate_rule_config(
            "1200", "expense", "monthly", date(2024, 1, 1), day_of_month=31
        )

        assert amount == Decimal("1200")
        assert kind == EntryKind.EXPENSE
        assert frequency == Frequency.MONTHLY

    def test_yearly_leap_day_allowed(self):
        validate_rule_config("10", "expense", "yearly", date(2024, 2, 29))

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"amount": "0"}, "positive"),
            ({"amount": "-3"}, "positive"),
            ({"amount": "ten"}, "Invalid amount"),
            ({"kind": "gift"}, "Unknown entry kind"),
            ({"frequency": "hourly"}, "Unknown frequency"),
            ({"interval": 0}, "Interval"),
            ({"interval": -1}, "Interval"),
            ({"day_of_week": 7}, "day_of_week"),
            ({"day_of_month": 32}, "day_of_month"),
            ({"day_of_month": 0}, "day_of_month"),
            ({"month_of_year": 13}, "month_of_year"),
            ({"end_date": date(2023, 12, 31)}, "End date"),
        ],
    )
    def test_rejected(self, overrides, message):
        params = {
            "amount": "10",
            "kind": "expense",
            "frequency": "monthly",
            "start_date": date(2024, 1, 1),
        }
        params.update(overrides)

        with pytest.raises(InvalidRuleConfig, match=message):
            validate_rule_config(**params)

    @pytest.mark.parametrize("month,day", [(2, 30), (4, 31), (11, 31)])
    def test_yearly_day_that_never_exists(self, month, day):
        with pytest.raises(InvalidRuleConfig, match="never occurs"):
            validate_rule_config(
                "10", "expense", "yearly", date(2024, 1, 1), month_of_year=month, day_of_month=day
            )

    def test_errors_share_the_engine_base_class(self):
        with pytest.raises(LedgerFlowError):
            validate_rule_config("10", "expense", "monthly", date(2024, 1, 1), interval=0)
