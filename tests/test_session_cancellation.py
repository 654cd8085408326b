"""
Tests for session cancellation and the refund requests it creates.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.errors import ErrorKind
from app.fsm.states import OrderKind, OrderStatus, RefundRequestStatus, TherapySessionStatus
from app.models.order_details import SessionPaymentDetails
from app.models.therapy_session import TherapySession
from app.services.order_ledger import OrderLedger
from app.services.session_cancellation import BankDetails, SessionCancellationService

NOW = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)

BANK = BankDetails(
    bank_account_name=" Saman Silva ",
    bank_name="Commercial Bank",
    account_number="8001 2345 6789",
    swift_code="cccplklx",
)


async def booked_session(db, parent_id, hours_ahead=48, status=TherapySessionStatus.SCHEDULED):
    session = TherapySession(
        scheduled_at=NOW + timedelta(hours=hours_ahead),
        booked_rate=Decimal("3500.00"),
        status=status.value,
        parent_user_id=parent_id,
        patient_name="Tharu",
        therapist_name="Dr. Fernando",
    )
    db.add(session)
    await db.flush()
    return session


async def pay_for(db, session, amount="3000.00", status=OrderStatus.COMPLETED):
    ledger = OrderLedger(db)
    result = await ledger.create_order(
        OrderKind.SESSION_PAYMENT,
        amount,
        details=SessionPaymentDetails(
            session_id=session.id,
            payer_first_name="Saman",
            payer_last_name="Silva",
            payer_email="saman@example.com",
            payer_phone="0771234567",
        ),
        user_id=session.parent_user_id,
    )
    if status != OrderStatus.PENDING:
        await ledger.apply_status(result.value.id, status)
    return result.value


class TestCancelSession:
    """Tests for cancel_session."""

    @pytest.mark.asyncio
    async def test_early_cancellation_refunds_ninety_percent_of_payment(self, db):
        parent = uuid.uuid4()
        session = await booked_session(db, parent, hours_ahead=48)
        await pay_for(db, session, "3000.00")

        result = await SessionCancellationService(db).cancel_session(
            session.id, parent, reason="Travelling", bank_details=BANK, now=NOW
        )

        assert result.ok, result.message
        cancellation = result.value
        assert session.status == TherapySessionStatus.CANCELLED.value
        assert cancellation.cancelled_at == NOW
        refund = cancellation.refund
        assert refund.original_amount == Decimal("3000.00")
        assert refund.refund_amount == Decimal("2700.00")
        assert refund.refund_percentage == 90
        assert refund.hours_before_session == Decimal("48.00")
        assert refund.refund_status == RefundRequestStatus.PENDING.value
        assert refund.bank_account_name == "Saman Silva"
        assert refund.account_number == "800123456789"
        assert refund.swift_code == "CCCPLKLX"
        assert refund.cancel_reason == "Travelling"

    @pytest.mark.asyncio
    async def test_late_cancellation_refunds_sixty_percent(self, db):
        parent = uuid.uuid4()
        session = await booked_session(db, parent, hours_ahead=5)
        await pay_for(db, session, "1000.00")

        result = await SessionCancellationService(db).cancel_session(
            session.id, parent, bank_details=BANK, now=NOW
        )

        assert result.value.refund.refund_amount == Decimal("600.00")

    @pytest.mark.asyncio
    async def test_past_session_cancels_without_refund(self, db):
        parent = uuid.uuid4()
        session = await booked_session(db, parent, hours_ahead=-2)
        await pay_for(db, session)

        result = await SessionCancellationService(db).cancel_session(session.id, parent, now=NOW)

        assert result.ok
        assert result.value.refund is None
        assert result.value.decision.eligible is False
        assert session.status == TherapySessionStatus.CANCELLED.value

    @pytest.mark.asyncio
    async def test_unpaid_session_cancels_without_refund(self, db):
        parent = uuid.uuid4()
        session = await booked_session(db, parent)
        await pay_for(db, session, status=OrderStatus.PENDING)

        result = await SessionCancellationService(db).cancel_session(session.id, parent, now=NOW)

        assert result.ok
        assert result.value.refund is None
        assert result.value.decision.original_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_refund_requires_bank_details(self, db):
        parent = uuid.uuid4()
        session = await booked_session(db, parent)
        await pay_for(db, session)

        result = await SessionCancellationService(db).cancel_session(session.id, parent, now=NOW)

        assert result.error == ErrorKind.VALIDATION
        assert session.status == TherapySessionStatus.SCHEDULED.value

    @pytest.mark.asyncio
    async def test_invalid_bank_details_are_listed(self, db):
        parent = uuid.uuid4()
        session = await booked_session(db, parent)
        await pay_for(db, session)
        bad = BankDetails(bank_account_name="", bank_name="BOC", account_number="12-34", swift_code="X")

        result = await SessionCancellationService(db).cancel_session(
            session.id, parent, bank_details=bad, now=NOW
        )

        assert result.error == ErrorKind.VALIDATION
        assert "Bank account holder name is required" in result.message
        assert "Account number should contain only numbers" in result.message
        assert "Invalid SWIFT code format" in result.message

    @pytest.mark.asyncio
    async def test_other_parents_session(self, db):
        session = await booked_session(db, uuid.uuid4())

        result = await SessionCancellationService(db).cancel_session(session.id, uuid.uuid4(), now=NOW)

        assert result.error == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,message", [
        (TherapySessionStatus.CANCELLED, "Session is already cancelled"),
        (TherapySessionStatus.COMPLETED, "Cannot cancel a completed session"),
    ])
    async def test_finished_sessions(self, db, status, message):
        parent = uuid.uuid4()
        session = await booked_session(db, parent, status=status)

        result = await SessionCancellationService(db).cancel_session(session.id, parent, now=NOW)

        assert result.error == ErrorKind.INVALID_STATE
        assert result.message == message


class TestRefundRequests:
    """Tests for the admin side of refund requests."""

    async def cancelled_with_refund(self, db):
        parent = uuid.uuid4()
        session = await booked_session(db, parent)
        await pay_for(db, session)
        result = await SessionCancellationService(db).cancel_session(
            session.id, parent, bank_details=BANK, now=NOW
        )
        return result.value.refund

    @pytest.mark.asyncio
    async def test_done_stamps_processed_at(self, db):
        refund = await self.cancelled_with_refund(db)
        service = SessionCancellationService(db)

        result = await service.update_refund_status(refund.id, " done ", "Paid via CEFT", now=NOW)

        assert result.ok
        assert refund.refund_status == RefundRequestStatus.DONE.value
        assert refund.processed_at == NOW
        assert refund.admin_notes == "Paid via CEFT"

    @pytest.mark.asyncio
    async def test_leaving_done_clears_processed_at(self, db):
        refund = await self.cancelled_with_refund(db)
        service = SessionCancellationService(db)
        await service.update_refund_status(refund.id, "DONE", now=NOW)

        await service.update_refund_status(refund.id, "REJECTED")

        assert refund.processed_at is None
        assert refund.refund_status == RefundRequestStatus.REJECTED.value

    @pytest.mark.asyncio
    async def test_notes_only_update_keeps_status(self, db):
        refund = await self.cancelled_with_refund(db)

        result = await SessionCancellationService(db).update_refund_status(
            refund.id, admin_notes="Called the parent"
        )

        assert result.ok
        assert refund.refund_status == RefundRequestStatus.PENDING.value
        assert refund.admin_notes == "Called the parent"

    @pytest.mark.asyncio
    async def test_unknown_status(self, db):
        refund = await self.cancelled_with_refund(db)

        result = await SessionCancellationService(db).update_refund_status(refund.id, "COMPLETED")

        assert result.error == ErrorKind.VALIDATION
        assert "PENDING, PROCESSING, DONE, REJECTED" in result.message

    @pytest.mark.asyncio
    async def test_unknown_refund(self, db):
        result = await SessionCancellationService(db).update_refund_status(uuid.uuid4(), "DONE")
        assert result.error == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, db):
        first = await self.cancelled_with_refund(db)
        await self.cancelled_with_refund(db)
        service = SessionCancellationService(db)
        await service.update_refund_status(first.id, "PROCESSING")

        processing, processing_total = await service.list_refunds(RefundRequestStatus.PROCESSING)
        everything, total = await service.list_refunds()

        assert [r.id for r in processing] == [first.id]
        assert processing_total == 1
        assert total == 2 and len(everything) == 2
