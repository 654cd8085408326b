"""
Order lifecycle enums and PayHere lookup tables.
"""

from enum import Enum


class OrderStatus(str, Enum):
    """Lifecycle status of a payment or donation order."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


class OrderKind(str, Enum):
    """What the order pays for."""

    DONATION = "DONATION"
    SESSION_PAYMENT = "SESSION_PAYMENT"

    @property
    def order_id_prefix(self) -> str:
        prefixes = {
            self.DONATION: "DON",
            self.SESSION_PAYMENT: "SES",
        }
        return prefixes.get(self, "ORD")


class DonationFrequency(str, Enum):
    ONE_TIME = "ONE_TIME"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class PayHereStatusCode(str, Enum):
    """
    Status codes PayHere posts to the notify URL.
    Anything not listed here is treated as a failure.
    """

    SUCCESS = "2"
    PENDING = "0"
    CANCELLED = "-1"
    FAILED = "-2"
    CHARGEDBACK = "-3"

    @property
    def order_status(self) -> OrderStatus:
        statuses = {
            self.SUCCESS: OrderStatus.COMPLETED,
            self.PENDING: OrderStatus.PENDING,
            self.CANCELLED: OrderStatus.CANCELLED,
            self.FAILED: OrderStatus.FAILED,
            self.CHARGEDBACK: OrderStatus.REFUNDED,
        }
        return statuses[self]

    @property
    def display_name(self) -> str:
        names = {
            self.SUCCESS: "Success",
            self.PENDING: "Pending",
            self.CANCELLED: "Cancelled",
            self.FAILED: "Failed",
            self.CHARGEDBACK: "Chargedback",
        }
        return names.get(self, "Unknown")


def order_status_for_code(status_code: str) -> OrderStatus:
    """Map a PayHere status code to an order status. Unknown codes fail."""
    try:
        return PayHereStatusCode(str(status_code).strip()).order_status
    except ValueError:
        return OrderStatus.FAILED


# PayHere "method" values to our payment method names
PAYHERE_METHODS = {
    "VISA": "VISA",
    "MASTER": "MASTERCARD",
    "AMEX": "AMEX",
    "eZ Cash": "HELAPAY",
    "Genie": "HELAPAY",
    "BANK": "BANK_TRANSFER",
}


class NotificationType(str, Enum):
    PAYMENT = "PAYMENT"
    APPOINTMENT = "APPOINTMENT"
    SYSTEM = "SYSTEM"


class TherapySessionStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class RefundRequestStatus(str, Enum):
    """Progress of a cancellation refund paid out by bank transfer."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    REJECTED = "REJECTED"
