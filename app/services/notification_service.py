"""
Notification Service - in-app notifications for payers.

Notifications are stored in the database and published on the receiver's
Redis channel, where the platform's SSE relay picks them up. Publishing is
best effort: the stored row is the source of truth.
"""

import json
import uuid
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_context
from app.fsm.states import NotificationType, OrderKind
from app.models.notification import Notification
from app.models.order import Order
from app.redis import get_redis

logger = logging.getLogger(__name__)


def user_channel(user_id: uuid.UUID) -> str:
    return f"notifications:{user_id}"


class NotificationService:
    """Service for creating and publishing notifications."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def notify(
        self,
        receiver_id: uuid.UUID,
        title: str,
        message: str,
        type: NotificationType = NotificationType.SYSTEM,
        sender_id: Optional[uuid.UUID] = None,
        is_urgent: bool = False,
    ) -> Notification:
        """Store a notification and push it to the receiver's channel."""
        notification = Notification(
            receiver_id=receiver_id,
            sender_id=sender_id,
            type=type.value,
            title=title,
            message=message,
            is_urgent=is_urgent,
        )
        self.db.add(notification)
        await self.db.flush()

        await self._publish(notification)
        return notification

    async def _publish(self, notification: Notification) -> None:
        payload = {
            "id": str(notification.id),
            "title": notification.title,
            "message": notification.message,
            "type": notification.type,
            "isRead": notification.is_read,
            "isUrgent": notification.is_urgent,
            "senderId": str(notification.sender_id) if notification.sender_id else None,
            "receiverId": str(notification.receiver_id),
            "createdAt": notification.created_at.isoformat(),
        }
        try:
            redis = await get_redis()
            await redis.publish(user_channel(notification.receiver_id), json.dumps(payload))
        except Exception as e:
            logger.warning(f"Failed to publish notification {notification.id}: {e}")

    async def notify_payment_completed(self, order: Order) -> Optional[Notification]:
        """Tell the payer their payment went through. Guests get nothing."""
        if not order.user_id:
            logger.info(f"Order {order.external_order_id} has no user; skipping notification")
            return None

        if order.kind == OrderKind.DONATION.value:
            title = "Donation Confirmed"
            message = (
                f"Your donation of {order.currency} {order.amount} has been confirmed. Thank you!"
            )
        else:
            title = "Payment Confirmed"
            message = (
                f"Your session payment of {order.currency} {order.amount} has been received."
            )

        return await self.notify(
            receiver_id=order.user_id,
            title=title,
            message=message,
            type=NotificationType.PAYMENT,
        )

    async def notify_refunded(self, order: Order, reason: Optional[str] = None) -> Optional[Notification]:
        if not order.user_id:
            return None

        message = f"Your payment of {order.currency} {order.amount} has been refunded."
        if reason:
            message += f" Reason: {reason}"

        return await self.notify(
            receiver_id=order.user_id,
            title="Payment Refunded",
            message=message,
            type=NotificationType.PAYMENT,
        )


async def deliver_payment_notification(order_id: uuid.UUID) -> None:
    """
    Background task run after a webhook completes an order.

    Opens its own session; any failure is logged and dropped so it can
    never affect the reconciliation that triggered it.
    """
    try:
        async with get_db_context() as db:
            order = await db.get(Order, order_id)
            if not order:
                logger.error(f"Order {order_id} vanished before notification")
                return
            await NotificationService(db).notify_payment_completed(order)
    except Exception as e:
        logger.error(f"Payment notification for order {order_id} failed: {e}", exc_info=True)


async def deliver_refund_notification(order_id: uuid.UUID, reason: Optional[str] = None) -> None:
    """Background task run after an admin marks an order refunded."""
    try:
        async with get_db_context() as db:
            order = await db.get(Order, order_id)
            if not order:
                logger.error(f"Order {order_id} vanished before refund notification")
                return
            await NotificationService(db).notify_refunded(order, reason)
    except Exception as e:
        logger.error(f"Refund notification for order {order_id} failed: {e}", exc_info=True)
