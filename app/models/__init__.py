"""Models package for database models."""

from app.models.order import Order
from app.models.notification import Notification
from app.models.therapy_session import TherapySession
from app.models.session_refund import SessionRefund

__all__ = [
    "Order",
    "Notification",
    "TherapySession",
    "SessionRefund",
]
