"""
Unit tests for pricing validation rules.

See STANDARDS_TESTING.md for patterns.

Run: pytest tests/unit/test_pricing_validation_service.py -v
"""

import pytest
from datetime import date
from decimal import Decimal
from typing import Optional

from models.item_pricing import ItemPrice
from models.pricing_upload import ValidationStatus
from parsers.pricing_csv_parser import PricingCSVRow
from services.pricing_validation_service import (
    AUTO_APPROVE_THRESHOLD_PCT,
    price_change_percentage,
    validate_batch,
    validate_record,
)


# ===================
# FIXTURES
# ===================

@pytest.fixture
def lookup():
    """A1=100, B2=80, C3=0, D4 unpriced; anything else is unknown."""
    items = {
        "A1": ItemPrice(item_code="A1", current_price=Decimal("100")),
        "B2": ItemPrice(item_code="B2", current_price=Decimal("80")),
        "C3": ItemPrice(item_code="C3", current_price=Decimal("0")),
        "D4": ItemPrice(item_code="D4", current_price=None),
    }
    return items.get


def row(item_code: str, price: str, row_number: int = 2, unparsed_date: Optional[str] = None) -> PricingCSVRow:
    return PricingCSVRow(
        row_number=row_number,
        item_code=item_code,
        proposed_price=Decimal(price),
        effective_date=date(2025, 1, 15),
        unparsed_effective_date=unparsed_date,
    )


# ===================
# PERCENTAGE
# ===================

class TestPriceChangePercentage:
    """Tests for price_change_percentage."""

    def test_increase(self):
        assert price_change_percentage(Decimal("100"), Decimal("150")) == Decimal("50")

    def test_decrease(self):
        assert price_change_percentage(Decimal("80"), Decimal("60")) == Decimal("-25")

    def test_zero_current_price_is_undefined(self):
        assert price_change_percentage(Decimal("0"), Decimal("10")) is None


# ===================
# SINGLE RECORD
# ===================

class TestValidateRecord:
    """Tests for validate_record."""

    def test_small_change_is_auto_approved(self, lookup):
        outcome = validate_record(row("A1", "120"), lookup)

        assert outcome.status == ValidationStatus.APPROVED
        assert outcome.auto_approved
        assert outcome.current_price == Decimal("100")
        assert outcome.price_change_percentage == Decimal("20.00")
        assert outcome.errors == []
        assert outcome.warnings == []

    def test_exactly_fifty_percent_is_approved(self, lookup):
        outcome = validate_record(row("A1", "150"), lookup)

        assert AUTO_APPROVE_THRESHOLD_PCT == Decimal("50")
        assert outcome.status == ValidationStatus.APPROVED
        assert outcome.price_change_percentage == Decimal("50.00")

    def test_fifty_percent_decrease_is_approved(self, lookup):
        outcome = validate_record(row("A1", "50"), lookup)

        assert outcome.status == ValidationStatus.APPROVED
        assert outcome.price_change_percentage == Decimal("-50.00")

    def test_just_over_fifty_percent_requires_review(self, lookup):
        outcome = validate_record(row("A1", "150.01"), lookup)

        assert outcome.status == ValidationStatus.REQUIRES_REVIEW
        assert outcome.price_change_percentage == Decimal("50.01")
        assert outcome.errors == []
        assert "exceeds the 50% auto-approval limit" in outcome.warnings[0]

    def test_large_decrease_requires_review(self, lookup):
        outcome = validate_record(row("B2", "20"), lookup)

        assert outcome.status == ValidationStatus.REQUIRES_REVIEW
        assert outcome.price_change_percentage == Decimal("-75.00")

    def test_percentage_is_rounded(self, lookup):
        outcome = validate_record(row("A1", "133.3333"), lookup)

        assert outcome.price_change_percentage == Decimal("33.33")

    def test_unknown_item_requires_review_with_error(self, lookup):
        outcome = validate_record(row("ZZZZ", "10"), lookup)

        assert outcome.status == ValidationStatus.REQUIRES_REVIEW
        assert not outcome.auto_approved
        assert not outcome.approvable
        assert outcome.errors == ["Item code ZZZZ not found in item master"]
        assert outcome.current_price is None
        assert outcome.price_change_percentage is None

    def test_zero_current_price_does_not_divide(self, lookup):
        outcome = validate_record(row("C3", "10"), lookup)

        assert outcome.status == ValidationStatus.REQUIRES_REVIEW
        assert outcome.price_change_percentage is None
        assert outcome.current_price == Decimal("0")
        assert outcome.errors == []
        assert "percentage change is undefined" in outcome.warnings[0]

    def test_unpriced_item_requires_review(self, lookup):
        outcome = validate_record(row("D4", "10"), lookup)

        assert outcome.status == ValidationStatus.REQUIRES_REVIEW
        assert outcome.current_price is None
        assert "No current price on record for D4" in outcome.warnings[0]

    @pytest.mark.parametrize("price", ["0", "-1"])
    def test_non_positive_price_is_an_error(self, lookup, price):
        outcome = validate_record(row("A1", price), lookup)

        assert outcome.status == ValidationStatus.REQUIRES_REVIEW
        assert len(outcome.errors) == 1
        assert "must be a number greater than 0" in outcome.errors[0]
        assert outcome.price_change_percentage is None

    def test_errors_accumulate(self, lookup):
        outcome = validate_record(row("ZZZZ", "0"), lookup)

        assert len(outcome.errors) == 2

    def test_unrecognised_date_requires_review(self, lookup):
        outcome = validate_record(row("A1", "110", unparsed_date="someday"), lookup)

        assert outcome.status == ValidationStatus.REQUIRES_REVIEW
        assert outcome.errors == []
        assert "Effective date 'someday' not recognised; using 2025-01-15" in outcome.warnings

    def test_lowercase_item_code_is_matched(self, lookup):
        outcome = validate_record(row("a1", "110"), lookup)

        assert outcome.item_code == "A1"
        assert outcome.status == ValidationStatus.APPROVED

    def test_revalidation_is_idempotent(self, lookup):
        candidate = row("B2", "200")

        first = validate_record(candidate, lookup)
        second = validate_record(candidate, lookup)

        assert first == second


# ===================
# BATCH
# ===================

class TestValidateBatch:
    """Tests for validate_batch."""

    def test_outcomes_follow_row_order(self, lookup):
        candidates = [row("B2", "81", row_number=3), row("A1", "101", row_number=2)]

        outcomes = validate_batch(candidates, lookup)

        assert [o.row_number for o in outcomes] == [2, 3]
        assert [o.item_code for o in outcomes] == ["A1", "B2"]

    def test_repeated_item_is_checked_against_snapshot_price(self, lookup):
        # A1 is 100 in the item master; row 3 is compared with 100, not 120
        candidates = [row("A1", "120", row_number=2), row("A1", "50", row_number=3)]

        first, second = validate_batch(candidates, lookup)

        assert first.status == ValidationStatus.APPROVED
        assert second.status == ValidationStatus.REQUIRES_REVIEW
        assert second.current_price == Decimal("100")
        assert second.price_change_percentage == Decimal("-50.00")
        assert second.errors == []
        assert "Item code A1 also appears on row 2; this row is applied after it" in second.warnings

    def test_unknown_item_in_batch(self, lookup):
        outcomes = validate_batch([row("A1", "110"), row("ZZZZ", "10", row_number=3)], lookup)

        assert outcomes[0].status == ValidationStatus.APPROVED
        assert outcomes[1].status == ValidationStatus.REQUIRES_REVIEW
        assert "not found" in outcomes[1].errors[0]

    def test_batch_revalidation_is_idempotent(self, lookup):
        candidates = [row("A1", "120"), row("A1", "50", row_number=3), row("C3", "5", row_number=4)]

        assert validate_batch(candidates, lookup) == validate_batch(candidates, lookup)
