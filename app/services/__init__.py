"""Services package."""

from app.services.payhere_gateway import PayHereGateway, PayHereCustomer, WebhookEvent
from app.services.order_ledger import OrderLedger, StatusChange
from app.services.refund_policy import RefundPolicy, RefundDecision, calculate_refund
from app.services.reconciliation import ReconciliationCoordinator, ReconciliationOutcome
from app.services.notification_service import NotificationService
from app.services.checkout_service import CheckoutService, Checkout
from app.services.session_cancellation import SessionCancellationService, BankDetails, Cancellation

__all__ = [
    "CheckoutService",
    "Checkout",
    "PayHereGateway",
    "PayHereCustomer",
    "WebhookEvent",
    "OrderLedger",
    "StatusChange",
    "RefundPolicy",
    "RefundDecision",
    "calculate_refund",
    "ReconciliationCoordinator",
    "ReconciliationOutcome",
    "NotificationService",
    "SessionCancellationService",
    "BankDetails",
    "Cancellation",
]
