"""
Tests for payer notifications.
"""

import json
import uuid
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select

from app.fsm.states import NotificationType, OrderKind
from app.models.notification import Notification
from app.services.notification_service import (
    NotificationService,
    deliver_payment_notification,
    deliver_refund_notification,
    user_channel,
)
from app.services.order_ledger import OrderLedger


@pytest.fixture
def redis():
    client = MagicMock()
    client.publish = AsyncMock(return_value=1)
    with patch("app.services.notification_service.get_redis", AsyncMock(return_value=client)):
        yield client


@pytest.fixture
def use_test_session(db):
    @asynccontextmanager
    async def session_context():
        yield db

    with patch("app.services.notification_service.get_db_context", session_context):
        yield


async def make_order(db, kind=OrderKind.DONATION, user_id=None):
    result = await OrderLedger(db).create_order(kind, "1500", user_id=user_id)
    return result.value


class TestNotificationService:
    """Tests for storing and publishing notifications."""

    @pytest.mark.asyncio
    async def test_notify_stores_and_publishes(self, db, redis):
        receiver = uuid.uuid4()

        notification = await NotificationService(db).notify(
            receiver_id=receiver,
            title="Hello",
            message="World",
            type=NotificationType.SYSTEM,
        )

        assert notification.id is not None
        assert notification.is_read is False
        channel, payload = redis.publish.await_args.args
        assert channel == user_channel(receiver) == f"notifications:{receiver}"
        body = json.loads(payload)
        assert body["title"] == "Hello"
        assert body["receiverId"] == str(receiver)
        assert body["senderId"] is None

    @pytest.mark.asyncio
    async def test_publish_failure_keeps_stored_notification(self, db, redis):
        redis.publish.side_effect = ConnectionError("redis down")
        receiver = uuid.uuid4()

        await NotificationService(db).notify(receiver, "Hello", "World")

        rows = (await db.execute(select(Notification))).scalars().all()
        assert len(rows) == 1
        assert rows[0].receiver_id == receiver

    @pytest.mark.asyncio
    async def test_donation_confirmation(self, db, redis):
        user_id = uuid.uuid4()
        order = await make_order(db, user_id=user_id)

        notification = await NotificationService(db).notify_payment_completed(order)

        assert notification.title == "Donation Confirmed"
        assert notification.type == NotificationType.PAYMENT.value
        assert "LKR 1500" in notification.message
        assert notification.receiver_id == user_id

    @pytest.mark.asyncio
    async def test_session_payment_confirmation(self, db, redis):
        order = await make_order(db, kind=OrderKind.SESSION_PAYMENT, user_id=uuid.uuid4())

        notification = await NotificationService(db).notify_payment_completed(order)

        assert notification.title == "Payment Confirmed"

    @pytest.mark.asyncio
    async def test_guest_gets_no_notification(self, db, redis):
        order = await make_order(db)

        assert await NotificationService(db).notify_payment_completed(order) is None
        assert await NotificationService(db).notify_refunded(order) is None
        redis.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refund_notice_includes_reason(self, db, redis):
        order = await make_order(db, user_id=uuid.uuid4())

        notification = await NotificationService(db).notify_refunded(order, "Session cancelled")

        assert notification.title == "Payment Refunded"
        assert notification.message.endswith("Reason: Session cancelled")


class TestBackgroundDelivery:
    """Tests for the background tasks scheduled by the API."""

    @pytest.mark.asyncio
    async def test_deliver_payment_notification(self, db, redis, use_test_session):
        order = await make_order(db, user_id=uuid.uuid4())

        await deliver_payment_notification(order.id)

        rows = (await db.execute(select(Notification))).scalars().all()
        assert [n.title for n in rows] == ["Donation Confirmed"]

    @pytest.mark.asyncio
    async def test_deliver_refund_notification(self, db, redis, use_test_session):
        order = await make_order(db, user_id=uuid.uuid4())

        await deliver_refund_notification(order.id, "Duplicate")

        rows = (await db.execute(select(Notification))).scalars().all()
        assert [n.title for n in rows] == ["Payment Refunded"]

    @pytest.mark.asyncio
    async def test_missing_order_is_ignored(self, db, redis, use_test_session):
        await deliver_payment_notification(uuid.uuid4())
        redis.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self):
        with patch(
            "app.services.notification_service.get_db_context",
            side_effect=RuntimeError("Database not configured"),
        ):
            await deliver_payment_notification(uuid.uuid4())
            await deliver_refund_notification(uuid.uuid4())
