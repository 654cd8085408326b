"""
Admin Session Refund Endpoints.
Review and progress refunds owed for cancelled sessions.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_admin_user
from app.api.responses import unwrap
from app.database import get_db
from app.fsm.states import RefundRequestStatus
from app.models.session_refund import SessionRefund
from app.services.session_cancellation import SessionCancellationService

router = APIRouter(dependencies=[Depends(get_admin_user)])
logger = logging.getLogger(__name__)


class UpdateRefundRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refund_status: Optional[str] = Field(None, alias="refundStatus")
    admin_note: Optional[str] = Field(None, alias="adminNote")
    admin_notes: Optional[str] = Field(None, alias="adminNotes")


def serialize_refund(refund: SessionRefund) -> dict:
    return {
        "id": str(refund.id),
        "sessionId": str(refund.session_id),
        "userId": str(refund.user_id),
        "originalAmount": float(refund.original_amount),
        "refundAmount": float(refund.refund_amount),
        "refundPercentage": refund.refund_percentage,
        "hoursBeforeSession": float(refund.hours_before_session),
        "cancelReason": refund.cancel_reason,
        "bankAccountName": refund.bank_account_name,
        "bankName": refund.bank_name,
        "accountNumber": refund.account_number,
        "swiftCode": refund.swift_code,
        "refundStatus": refund.refund_status,
        "adminNotes": refund.admin_notes,
        "processedAt": refund.processed_at.isoformat() if refund.processed_at else None,
        "createdAt": refund.created_at.isoformat() if refund.created_at else None,
    }


@router.get("/session-refunds")
async def list_session_refunds(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    status: Optional[RefundRequestStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """List session refund requests, newest first."""
    service = SessionCancellationService(db)
    items, total = await service.list_refunds(status=status, page=page, page_size=page_size)
    return {
        "success": True,
        "data": {
            "items": [serialize_refund(r) for r in items],
            "total": total,
            "page": page,
            "pageSize": page_size,
        },
    }


@router.patch("/session-refunds/{refund_id}")
async def update_session_refund(
    refund_id: uuid.UUID,
    body: UpdateRefundRequest,
    db: AsyncSession = Depends(get_db),
):
    """Set a refund's status (processedAt is stamped when DONE) and notes."""
    service = SessionCancellationService(db)
    refund = unwrap(await service.update_refund_status(
        refund_id,
        refund_status=body.refund_status,
        admin_notes=body.admin_note if body.admin_note is not None else body.admin_notes,
    ))
    await db.commit()

    return {"success": True, "refund": serialize_refund(refund)}
