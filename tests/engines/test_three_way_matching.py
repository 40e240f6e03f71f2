"""
Tests for the pure three-way match engine.

Tests cover:
- Missing-document states (pending, missing_bill, missing_receipt)
- Tolerance boundaries (variance equal to tolerance is matched)
- Quantity mismatch precedence over price mismatch
- Custom tolerance policies
"""

from decimal import Decimal

import pytest

from fulfillment_engines.matching import (
    MatchTolerance,
    ThreeWayMatchStatus,
    evaluate_three_way_match,
)


def evaluate(received=100, bill=Decimal("1000"), ordered=100, po_total=Decimal("1000"),
             tolerance=None):
    return evaluate_three_way_match(
        ordered_quantity=ordered,
        po_total=po_total,
        received_quantity=received,
        bill_total=bill,
        tolerance=tolerance,
    )


class TestMissingDocuments:
    """Classification when a receipt or a bill is absent."""

    def test_nothing_recorded_is_pending(self):
        assert evaluate(received=None, bill=None).status == ThreeWayMatchStatus.PENDING

    def test_receipt_without_bill(self):
        assert evaluate(bill=None).status == ThreeWayMatchStatus.MISSING_BILL

    def test_bill_without_receipt(self):
        assert evaluate(received=None).status == ThreeWayMatchStatus.MISSING_RECEIPT


class TestVariances:
    """Variance computation against default tolerances (2% qty, 5% price)."""

    def test_exact_match(self):
        result = evaluate()
        assert result.status == ThreeWayMatchStatus.MATCHED
        assert result.quantity_variance == Decimal("0")
        assert result.price_variance == Decimal("0")
        assert result.is_matched

    def test_bill_within_price_tolerance(self):
        result = evaluate(bill=Decimal("1049"))
        assert result.status == ThreeWayMatchStatus.MATCHED
        assert result.price_variance == Decimal("49")
        assert result.price_tolerance == Decimal("50")

    def test_variance_equal_to_tolerance_is_matched(self):
        assert evaluate(bill=Decimal("1050")).status == ThreeWayMatchStatus.MATCHED

    def test_bill_over_price_tolerance(self):
        result = evaluate(bill=Decimal("1060"))
        assert result.status == ThreeWayMatchStatus.PRICE_MISMATCH
        assert result.price_variance == Decimal("60")

    def test_under_billing_counts_as_variance(self):
        assert evaluate(bill=Decimal("900")).status == ThreeWayMatchStatus.PRICE_MISMATCH

    def test_quantity_within_tolerance(self):
        assert evaluate(received=98).status == ThreeWayMatchStatus.MATCHED

    def test_quantity_over_tolerance(self):
        result = evaluate(received=97)
        assert result.status == ThreeWayMatchStatus.QUANTITY_MISMATCH
        assert result.quantity_variance == Decimal("3")

    def test_quantity_mismatch_takes_precedence(self):
        result = evaluate(received=50, bill=Decimal("2000"))
        assert result.status == ThreeWayMatchStatus.QUANTITY_MISMATCH

    def test_price_minimum_applies_to_small_orders(self):
        result = evaluate(ordered=1, received=1, po_total=Decimal("0.10"), bill=Decimal("0.11"))
        assert result.price_tolerance == Decimal("0.01")
        assert result.status == ThreeWayMatchStatus.MATCHED

    def test_details_are_json_safe_strings(self):
        details = evaluate(bill=Decimal("1049")).details
        assert all(isinstance(v, str) for v in details.values())


class TestMatchTolerance:
    """Tolerance policy construction."""

    def test_custom_tolerance_tightens_match(self):
        strict = MatchTolerance(quantity_percent=Decimal("0"), price_percent=Decimal("1"))
        assert evaluate(bill=Decimal("1011"), tolerance=strict).status == (
            ThreeWayMatchStatus.PRICE_MISMATCH
        )

    def test_numeric_inputs_are_coerced_to_decimal(self):
        tolerance = MatchTolerance(quantity_percent=3, price_percent="2.5")
        assert tolerance.quantity_percent == Decimal("3")
        assert tolerance.price_tolerance(Decimal("1000")) == Decimal("25")

    def test_negative_tolerance_rejected(self):
        with pytest.raises(ValueError):
            MatchTolerance(price_percent=Decimal("-1"))
