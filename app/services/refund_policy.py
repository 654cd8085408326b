"""
Refund Policy - how much of a session charge comes back on cancellation.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Union

from app.config import settings

TWO_PLACES = Decimal("0.01")
SWIFT_PATTERN = re.compile(r"^[A-Z]{6}[A-Z0-9]{2}([A-Z0-9]{3})?$")


@dataclass(frozen=True)
class RefundPolicy:
    """Step function from hours-before-session to refund percentage."""

    full_window_hours: int = 24
    early_percentage: int = 90
    late_percentage: int = 60

    @classmethod
    def from_settings(cls) -> "RefundPolicy":
        return cls(
            full_window_hours=settings.refund_full_window_hours,
            early_percentage=settings.refund_early_percentage,
            late_percentage=settings.refund_late_percentage,
        )

    def percentage_for(self, hours_before_event: float) -> int:
        # Boundaries go to the customer: exactly 24h is early, exactly 0h is late
        if hours_before_event >= self.full_window_hours:
            return self.early_percentage
        if hours_before_event >= 0:
            return self.late_percentage
        return 0

    def describe(self) -> Dict[str, str]:
        return {
            "before24Hours": (
                f"{self.early_percentage}% refund "
                f"({100 - self.early_percentage}% cancellation fee)"
            ),
            "within24Hours": (
                f"{self.late_percentage}% refund "
                f"({100 - self.late_percentage}% cancellation fee)"
            ),
            "afterSession": "No refund available",
        }


@dataclass(frozen=True)
class RefundDecision:
    original_amount: Decimal
    refund_amount: Decimal
    refund_percentage: int
    hours_before_event: float
    eligible: bool

    def to_dict(self) -> dict:
        return {
            "originalAmount": float(self.original_amount),
            "refundAmount": float(self.refund_amount),
            "refundPercentage": self.refund_percentage,
            "hoursBeforeSession": round(self.hours_before_event, 1),
            "canRefund": self.eligible,
        }


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def calculate_refund(
    event_time: datetime,
    original_amount: Union[Decimal, int, float, str],
    cancellation_time: Optional[datetime] = None,
    policy: Optional[RefundPolicy] = None,
) -> RefundDecision:
    """
    Work out the refund for cancelling an event at cancellation_time.

    Cancelling after the event started gives nothing back. Zero or
    negative charges are not an error, they just refund nothing.
    """
    policy = policy or RefundPolicy.from_settings()
    cancellation_time = _as_utc(cancellation_time or datetime.now(timezone.utc))
    event_time = _as_utc(event_time)

    hours_before_event = (event_time - cancellation_time).total_seconds() / 3600
    amount = Decimal(str(original_amount))

    percentage = policy.percentage_for(hours_before_event)
    if amount <= 0:
        refund_amount = Decimal("0.00")
    else:
        refund_amount = (amount * percentage / Decimal(100)).quantize(
            TWO_PLACES, rounding=ROUND_HALF_UP
        )

    return RefundDecision(
        original_amount=amount,
        refund_amount=refund_amount,
        refund_percentage=percentage,
        hours_before_event=max(0.0, hours_before_event),
        eligible=refund_amount > 0,
    )


def refund_policy_description(policy: Optional[RefundPolicy] = None) -> Dict[str, str]:
    return (policy or RefundPolicy.from_settings()).describe()


def validate_bank_details(
    bank_account_name: str,
    bank_name: str,
    account_number: str,
    swift_code: Optional[str] = None,
) -> List[str]:
    """Return the problems with refund payout bank details (empty if valid)."""
    errors = []

    if not (bank_account_name or "").strip():
        errors.append("Bank account holder name is required")

    if not (bank_name or "").strip():
        errors.append("Bank name is required")

    digits = re.sub(r"\s+", "", account_number or "")
    if not digits:
        errors.append("Account number is required")
    elif not digits.isdigit():
        errors.append("Account number should contain only numbers")

    if swift_code and swift_code.strip():
        if not SWIFT_PATTERN.match(swift_code.strip().upper()):
            errors.append("Invalid SWIFT code format")

    return errors
