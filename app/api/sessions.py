"""
Therapy Session Payment Endpoints.
Refund quotes, cancellation and payment initiation for booked sessions.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user_id
from app.api.responses import unwrap
from app.database import get_db
from app.fsm.states import TherapySessionStatus
from app.models.therapy_session import TherapySession
from app.services.checkout_service import CheckoutService
from app.services.refund_policy import calculate_refund, refund_policy_description
from app.services.session_cancellation import BankDetails, SessionCancellationService

router = APIRouter()
logger = logging.getLogger(__name__)


class CalculateRefundRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[uuid.UUID] = Field(None, alias="sessionId")


class CustomerInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(..., alias="firstName", min_length=1)
    last_name: str = Field(..., alias="lastName", min_length=1)
    email: str = Field(..., min_length=3)
    phone: str = Field(..., min_length=1)
    address: str = ""
    city: str = "Colombo"


class BankDetailsPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bank_account_name: str = Field("", alias="bankAccountName")
    bank_name: str = Field("", alias="bankName")
    account_number: str = Field("", alias="accountNumber")
    swift_code: Optional[str] = Field(None, alias="swiftCode")


class CancelSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[uuid.UUID] = Field(None, alias="sessionId")
    cancellation_reason: Optional[str] = Field(None, alias="cancellationReason")
    bank_details: Optional[BankDetailsPayload] = Field(None, alias="bankDetails")


class InitiateSessionPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    customer_info: CustomerInfo = Field(..., alias="customerInfo")


@router.post("/calculate-refund")
async def calculate_session_refund(
    body: CalculateRefundRequest,
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    """Quote the refund a parent would get for cancelling a session now."""
    if not body.session_id:
        raise HTTPException(status_code=400, detail="Session ID is required")

    result = await db.execute(
        select(TherapySession)
        .where(TherapySession.id == body.session_id)
        .where(TherapySession.parent_user_id == user_id)
    )
    session = result.scalar_one_or_none()

    if not session:
        raise HTTPException(status_code=404, detail="Session not found or unauthorized")

    if session.status == TherapySessionStatus.CANCELLED.value:
        raise HTTPException(status_code=400, detail="Session is already cancelled")

    if session.status == TherapySessionStatus.COMPLETED.value:
        raise HTTPException(status_code=400, detail="Cannot cancel a completed session")

    decision = calculate_refund(
        session.scheduled_at,
        session.booked_rate or 0,
        datetime.now(timezone.utc),
    )

    return {
        "success": True,
        "session": {
            "id": str(session.id),
            "scheduledAt": session.scheduled_at.isoformat(),
            "patientName": session.patient_name,
            "therapistName": session.therapist_name,
        },
        "refund": decision.to_dict(),
        "refundPolicy": refund_policy_description(),
    }


@router.post("/{session_id}/payment/initiate")
async def initiate_session_payment(
    session_id: uuid.UUID,
    body: InitiateSessionPaymentRequest,
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    """Create a PENDING payment for a booked session and return the checkout payload."""
    info = body.customer_info
    service = CheckoutService(db)
    checkout = unwrap(await service.create_session_payment(
        session_id=session_id,
        user_id=user_id,
        first_name=info.first_name,
        last_name=info.last_name,
        email=info.email,
        phone=info.phone,
        address=info.address,
        city=info.city,
    ))

    order = checkout.order
    return {
        "success": True,
        "payment": {
            "id": str(order.id),
            "orderId": order.external_order_id,
            "amount": float(order.amount),
            "currency": order.currency,
        },
        "paymentData": checkout.payment_data,
    }


@router.post("/cancel")
async def cancel_session(
    body: CancelSessionRequest,
    db: AsyncSession = Depends(get_db),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    """
    Cancel a booked session.

    When the cancellation earns a refund, bank details are required and a
    refund request is queued for the admins to pay out.
    """
    if not body.session_id:
        raise HTTPException(status_code=400, detail="Session ID is required")

    bank = body.bank_details
    service = SessionCancellationService(db)
    cancellation = unwrap(await service.cancel_session(
        body.session_id,
        user_id,
        reason=body.cancellation_reason,
        bank_details=BankDetails(
            bank_account_name=bank.bank_account_name,
            bank_name=bank.bank_name,
            account_number=bank.account_number,
            swift_code=bank.swift_code,
        ) if bank else None,
    ))
    await db.commit()

    session = cancellation.session
    decision = cancellation.decision
    refund = cancellation.refund
    return {
        "success": True,
        "message": "Session cancelled successfully",
        "cancellation": {
            "sessionId": str(session.id),
            "cancelledAt": cancellation.cancelled_at.isoformat(),
            "refundStatus": refund.refund_status if refund else "NOT_APPLICABLE",
            "refundId": str(refund.id) if refund else None,
            "refundAmount": float(decision.refund_amount),
            "cancellationFee": float(decision.original_amount - decision.refund_amount),
            "hoursUntilSession": round(decision.hours_before_event, 2),
            "therapistName": session.therapist_name,
        },
    }
