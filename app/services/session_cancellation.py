"""
Session Cancellation - cancel a booked therapy session and record the
refund owed for it.

The refund is worked out by the refund policy from the amount actually
paid for the session. Refunds are paid out by bank transfer, so an
eligible cancellation must come with valid bank details. Admins then move
the refund request through PENDING -> PROCESSING -> DONE (or REJECTED).
"""

import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ErrorKind, Result
from app.fsm.states import RefundRequestStatus, TherapySessionStatus
from app.models.session_refund import SessionRefund
from app.models.therapy_session import TherapySession
from app.services.order_ledger import OrderLedger
from app.services.refund_policy import (
    RefundDecision,
    RefundPolicy,
    calculate_refund,
    validate_bank_details,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BankDetails:
    bank_account_name: str
    bank_name: str
    account_number: str
    swift_code: Optional[str] = None


@dataclass(frozen=True)
class Cancellation:
    session: TherapySession
    decision: RefundDecision
    cancelled_at: datetime
    refund: Optional[SessionRefund] = None


class SessionCancellationService:
    """Service for session cancellations and their refund requests."""

    def __init__(self, db: AsyncSession, policy: Optional[RefundPolicy] = None):
        self.db = db
        self.policy = policy
        self.ledger = OrderLedger(db)

    async def cancel_session(
        self,
        session_id: uuid.UUID,
        user_id: uuid.UUID,
        reason: Optional[str] = None,
        bank_details: Optional[BankDetails] = None,
        now: Optional[datetime] = None,
    ) -> Result[Cancellation]:
        """
        Cancel a session owned by user_id.

        If the cancellation earns a refund, a PENDING SessionRefund is stored
        with the validated bank details.
        """
        now = now or datetime.now(timezone.utc)

        result = await self.db.execute(
            select(TherapySession)
            .where(TherapySession.id == session_id)
            .where(TherapySession.parent_user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        session = result.scalar_one_or_none()
        if not session:
            return Result.failure(ErrorKind.NOT_FOUND, "Session not found or unauthorized")

        if session.status == TherapySessionStatus.CANCELLED.value:
            return Result.failure(ErrorKind.INVALID_STATE, "Session is already cancelled")

        if session.status == TherapySessionStatus.COMPLETED.value:
            return Result.failure(ErrorKind.INVALID_STATE, "Cannot cancel a completed session")

        paid_order = await self.ledger.find_paid_session_order(session.id, user_id)
        paid_amount = paid_order.amount if paid_order else Decimal("0")
        decision = calculate_refund(session.scheduled_at, paid_amount, now, self.policy)

        refund = None
        if decision.eligible:
            if bank_details is None:
                return Result.failure(
                    ErrorKind.VALIDATION,
                    "Bank details are required to receive a refund",
                )
            errors = validate_bank_details(
                bank_details.bank_account_name,
                bank_details.bank_name,
                bank_details.account_number,
                bank_details.swift_code,
            )
            if errors:
                return Result.failure(ErrorKind.VALIDATION, "; ".join(errors))

            swift_code = (bank_details.swift_code or "").strip().upper() or None
            refund = SessionRefund(
                session_id=session.id,
                user_id=user_id,
                original_amount=decision.original_amount,
                refund_amount=decision.refund_amount,
                refund_percentage=decision.refund_percentage,
                hours_before_session=Decimal(str(round(decision.hours_before_event, 2))),
                cancel_reason=reason or None,
                bank_account_name=bank_details.bank_account_name.strip(),
                bank_name=bank_details.bank_name.strip(),
                account_number="".join(bank_details.account_number.split()),
                swift_code=swift_code,
                refund_status=RefundRequestStatus.PENDING.value,
            )
            self.db.add(refund)

        session.status = TherapySessionStatus.CANCELLED.value
        await self.db.flush()

        logger.info(
            f"Session {session.id} cancelled by {user_id}: "
            f"{decision.hours_before_event:.2f}h before start, "
            f"refund {decision.refund_amount} ({decision.refund_percentage}%)"
        )
        return Result.success(Cancellation(
            session=session,
            decision=decision,
            cancelled_at=now,
            refund=refund,
        ))

    async def get_refund(self, refund_id: uuid.UUID) -> Optional[SessionRefund]:
        result = await self.db.execute(
            select(SessionRefund).where(SessionRefund.id == refund_id)
        )
        return result.scalar_one_or_none()

    async def list_refunds(
        self,
        status: Optional[RefundRequestStatus] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[SessionRefund], int]:
        """Page through refund requests, newest first. Returns (items, total)."""
        page = max(page, 1)
        page_size = min(max(page_size, 1), 100)

        query = select(SessionRefund)
        count_query = select(func.count(SessionRefund.id))
        if status is not None:
            query = query.where(SessionRefund.refund_status == status.value)
            count_query = count_query.where(SessionRefund.refund_status == status.value)

        result = await self.db.execute(
            query.order_by(SessionRefund.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        total = (await self.db.execute(count_query)).scalar() or 0
        return list(result.scalars().all()), total

    async def update_refund_status(
        self,
        refund_id: uuid.UUID,
        refund_status: Optional[str] = None,
        admin_notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result[SessionRefund]:
        """Admin update of a refund request's status and notes."""
        refund = await self.get_refund(refund_id)
        if not refund:
            return Result.failure(ErrorKind.NOT_FOUND, f"Refund not found for id: {refund_id}")

        if refund_status is not None:
            try:
                new_status = RefundRequestStatus(refund_status.strip().upper())
            except ValueError:
                allowed = ", ".join(s.value for s in RefundRequestStatus)
                return Result.failure(
                    ErrorKind.VALIDATION,
                    f"Invalid refundStatus value '{refund_status}'. Allowed: {allowed}",
                )
            refund.refund_status = new_status.value
            refund.processed_at = (
                (now or datetime.now(timezone.utc))
                if new_status == RefundRequestStatus.DONE
                else None
            )

        if admin_notes is not None:
            refund.admin_notes = admin_notes

        await self.db.flush()
        logger.info(f"Refund {refund.id} for session {refund.session_id} is {refund.refund_status}")
        return Result.success(refund)
