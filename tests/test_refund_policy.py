"""
Tests for session cancellation refunds.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.services.refund_policy import (
    RefundPolicy,
    calculate_refund,
    refund_policy_description,
    validate_bank_details,
)

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def refund_for(hours_until_session: float, amount="1000"):
    return calculate_refund(
        NOW + timedelta(hours=hours_until_session),
        Decimal(amount),
        cancellation_time=NOW,
        policy=RefundPolicy(),
    )


class TestCalculateRefund:
    """Tests for the refund step function."""

    def test_more_than_a_day_ahead(self):
        decision = refund_for(25)

        assert decision.refund_percentage == 90
        assert decision.refund_amount == Decimal("900.00")
        assert decision.eligible is True
        assert decision.hours_before_event == pytest.approx(25)

    def test_within_a_day(self):
        decision = refund_for(2)

        assert decision.refund_percentage == 60
        assert decision.refund_amount == Decimal("600.00")
        assert decision.eligible is True

    def test_after_session_started(self):
        decision = refund_for(-1)

        assert decision.refund_percentage == 0
        assert decision.refund_amount == Decimal("0.00")
        assert decision.eligible is False
        assert decision.hours_before_event == 0

    def test_exactly_24_hours_is_early(self):
        assert refund_for(24).refund_percentage == 90

    def test_exactly_at_start_is_late(self):
        decision = refund_for(0)
        assert decision.refund_percentage == 60
        assert decision.refund_amount == Decimal("600.00")

    def test_rounds_half_up(self):
        # 60% of 0.75 is 0.45; 90% of 10.05 is 9.045
        assert refund_for(2, "0.75").refund_amount == Decimal("0.45")
        assert refund_for(30, "10.05").refund_amount == Decimal("9.05")

    @pytest.mark.parametrize("amount", ["0", "-10"])
    def test_non_positive_amount_refunds_nothing(self, amount):
        decision = refund_for(30, amount)
        assert decision.refund_amount == Decimal("0.00")
        assert decision.eligible is False

    def test_never_exceeds_original(self):
        for hours in (-5, 0, 1, 23.9, 24, 100):
            decision = refund_for(hours, "1234.56")
            assert Decimal("0") <= decision.refund_amount <= Decimal("1234.56")

    def test_naive_datetimes_treated_as_utc(self):
        decision = calculate_refund(
            datetime(2026, 3, 3, 9, 0),
            "500",
            cancellation_time=datetime(2026, 3, 1, 9, 0),
            policy=RefundPolicy(),
        )
        assert decision.refund_percentage == 90
        assert decision.hours_before_event == pytest.approx(48)

    def test_custom_policy(self):
        policy = RefundPolicy(full_window_hours=48, early_percentage=100, late_percentage=50)
        decision = calculate_refund(NOW + timedelta(hours=30), "200", NOW, policy)
        assert decision.refund_percentage == 50
        assert decision.refund_amount == Decimal("100.00")

    def test_to_dict(self):
        payload = refund_for(25.04).to_dict()
        assert payload == {
            "originalAmount": 1000.0,
            "refundAmount": 900.0,
            "refundPercentage": 90,
            "hoursBeforeSession": 25.0,
            "canRefund": True,
        }


class TestPolicyDescription:
    def test_describes_default_policy(self):
        description = refund_policy_description(RefundPolicy())
        assert description["before24Hours"] == "90% refund (10% cancellation fee)"
        assert description["within24Hours"] == "60% refund (40% cancellation fee)"
        assert description["afterSession"] == "No refund available"


class TestBankDetails:
    """Tests for refund payout bank detail validation."""

    def test_valid_details(self):
        assert validate_bank_details("N Perera", "Commercial Bank", "8001 2345 67", "CCEYLKLX") == []

    def test_missing_fields(self):
        errors = validate_bank_details("", " ", "")
        assert "Bank account holder name is required" in errors
        assert "Bank name is required" in errors
        assert "Account number is required" in errors

    def test_non_numeric_account(self):
        errors = validate_bank_details("N Perera", "BOC", "12AB34")
        assert errors == ["Account number should contain only numbers"]

    def test_bad_swift_code(self):
        errors = validate_bank_details("N Perera", "BOC", "123456", "BAD")
        assert errors == ["Invalid SWIFT code format"]

    def test_swift_code_optional(self):
        assert validate_bank_details("N Perera", "BOC", "123456", "") == []
