"""
PayHere Gateway - checkout request building and notification verification.

PayHere signs both directions with the same scheme:

    UPPER(MD5(merchant_id + order_id + amount + currency [+ status_code] + UPPER(MD5(secret))))

where amount always has exactly two decimals. Nothing in here does I/O.
"""

import hashlib
import hmac
import logging
import random
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Mapping, Optional, Union

from app.config import settings
from app.errors import ErrorKind, Result
from app.fsm.states import PAYHERE_METHODS, PayHereStatusCode

logger = logging.getLogger(__name__)

SANDBOX_CHECKOUT_URL = "https://sandbox.payhere.lk/pay/checkout"
LIVE_CHECKOUT_URL = "https://www.payhere.lk/pay/checkout"

# Form fields a notification must carry to be processed at all
REQUIRED_NOTIFICATION_FIELDS = (
    "merchant_id",
    "order_id",
    "payhere_amount",
    "payhere_currency",
    "status_code",
    "md5sig",
)


def md5_upper(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest().upper()


def format_amount(amount: Union[Decimal, int, float, str]) -> str:
    """
    Format an amount the way PayHere hashes it: two decimals, dot
    separator, no grouping. Raises ValueError for non-numeric input.
    """
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Malformed amount: {amount!r}") from e
    if not value.is_finite():
        raise ValueError(f"Malformed amount: {amount!r}")
    return f"{value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):f}"


def generate_order_id(prefix: str = "DON") -> str:
    """Order ID like DON17000000000001234 (epoch millis + 4 random digits)."""
    return f"{prefix}{int(time.time() * 1000)}{random.randint(0, 9999):04d}"


def parse_method(method: Optional[str]) -> str:
    """Map a PayHere payment method to our method name."""
    if not method:
        return "CARD"
    return PAYHERE_METHODS.get(method, method.upper())


def status_message(status_code: str) -> str:
    try:
        return PayHereStatusCode(status_code).display_name
    except ValueError:
        return "Unknown"


@dataclass(frozen=True)
class WebhookEvent:
    """A notification posted by PayHere to the notify URL."""

    merchant_id: str
    external_order_id: str
    external_payment_id: Optional[str]
    amount: str
    currency: str
    status_code: str
    signature: str
    custom_1: Optional[str] = None
    custom_2: Optional[str] = None
    status_message: Optional[str] = None
    method: Optional[str] = None

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> Result["WebhookEvent"]:
        """Build an event from the posted form; MALFORMED_EVENT if fields are missing."""

        def field(name: str) -> Optional[str]:
            value = form.get(name)
            if value is None:
                return None
            value = str(value).strip()
            return value or None

        missing = [name for name in REQUIRED_NOTIFICATION_FIELDS if not field(name)]
        if missing:
            return Result.failure(
                ErrorKind.MALFORMED_EVENT,
                f"Missing required fields: {', '.join(missing)}",
            )

        return Result.success(cls(
            merchant_id=field("merchant_id"),
            external_order_id=field("order_id"),
            external_payment_id=field("payment_id"),
            amount=field("payhere_amount"),
            currency=field("payhere_currency"),
            status_code=field("status_code"),
            signature=field("md5sig"),
            custom_1=field("custom_1"),
            custom_2=field("custom_2"),
            status_message=field("status_message"),
            method=field("method"),
        ))


@dataclass(frozen=True)
class PayHereCustomer:
    """Customer fields PayHere's checkout form requires."""

    first_name: str
    last_name: str
    email: str
    phone: str
    address: str = ""
    city: str = "Colombo"
    country: str = "Sri Lanka"


class PayHereGateway:
    """Translate orders into PayHere checkout requests and verify notifications."""

    def __init__(
        self,
        merchant_id: Optional[str] = None,
        merchant_secret: Optional[str] = None,
        mode: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        self.merchant_id = merchant_id if merchant_id is not None else settings.payhere_merchant_id
        self.merchant_secret = (
            merchant_secret if merchant_secret is not None else settings.payhere_merchant_secret
        )
        self.mode = mode or settings.payhere_mode
        base = (base_url or settings.app_base_url).rstrip("/")

        self.notify_url = f"{base}/webhooks/payhere"
        self.return_url = f"{base}/donate/success"
        self.cancel_url = f"{base}/donate/cancel"

    @property
    def is_sandbox(self) -> bool:
        return self.mode == "sandbox"

    @property
    def checkout_url(self) -> str:
        return SANDBOX_CHECKOUT_URL if self.is_sandbox else LIVE_CHECKOUT_URL

    def request_hash(self, order_id: str, amount: str, currency: str) -> str:
        return md5_upper(
            self.merchant_id
            + order_id
            + format_amount(amount)
            + currency
            + md5_upper(self.merchant_secret)
        )

    def build_payment_request(
        self,
        order,
        customer: PayHereCustomer,
        items: str,
        custom_1: Optional[str] = None,
        custom_2: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Map an order onto the fields PayHere's checkout expects.

        The same order always produces the same fields and hash.
        """
        amount = format_amount(order.amount)

        return {
            "sandbox": self.is_sandbox,
            "checkout_url": self.checkout_url,
            "merchant_id": self.merchant_id,
            "return_url": self.return_url,
            "cancel_url": self.cancel_url,
            "notify_url": self.notify_url,
            "order_id": order.external_order_id,
            "items": items,
            "amount": amount,
            "currency": order.currency,
            "first_name": customer.first_name,
            "last_name": customer.last_name,
            "email": customer.email,
            "phone": customer.phone,
            "address": customer.address,
            "city": customer.city,
            "country": customer.country,
            "hash": self.request_hash(order.external_order_id, amount, order.currency),
            "custom_1": custom_1 if custom_1 is not None else str(order.id),
            "custom_2": custom_2 or "",
        }

    def verify_notification(self, event: WebhookEvent, secret: Optional[str] = None) -> bool:
        """
        Recompute the notification signature and compare it with md5sig.

        Fails closed: a missing field, malformed amount, foreign merchant,
        unset secret or mismatch all return False.
        """
        secret = secret if secret is not None else self.merchant_secret
        if not secret:
            logger.error("PayHere merchant secret not configured; rejecting notification")
            return False

        required = (
            event.merchant_id,
            event.external_order_id,
            event.amount,
            event.currency,
            event.status_code,
            event.signature,
        )
        if not all(required):
            return False

        if self.merchant_id and event.merchant_id != self.merchant_id:
            logger.warning(f"Notification for foreign merchant id {event.merchant_id}")
            return False

        try:
            amount = format_amount(event.amount)
        except ValueError:
            return False

        expected = md5_upper(
            event.merchant_id
            + event.external_order_id
            + amount
            + event.currency
            + event.status_code
            + md5_upper(secret)
        )
        return hmac.compare_digest(
            expected.encode("utf-8"),
            event.signature.upper().encode("utf-8"),
        )
