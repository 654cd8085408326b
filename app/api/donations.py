"""
Donation Endpoints.
Creates donation orders and returns the PayHere checkout payload.
"""

import logging
import uuid
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_optional_user_id
from app.api.responses import unwrap
from app.database import get_db
from app.fsm.states import DonationFrequency
from app.services.checkout_service import CheckoutService

router = APIRouter()
logger = logging.getLogger(__name__)


class CreateDonationRequest(BaseModel):
    """Request body for creating a donation."""

    model_config = ConfigDict(populate_by_name=True)

    amount: Decimal
    donor_name: Optional[str] = Field(None, alias="donorName")
    donor_email: Optional[str] = Field(None, alias="donorEmail")
    donor_phone: Optional[str] = Field(None, alias="donorPhone")
    is_anonymous: bool = Field(False, alias="isAnonymous")
    message: Optional[str] = None
    frequency: DonationFrequency = DonationFrequency.ONE_TIME


def client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else "unknown")


@router.post("/create")
async def create_donation(
    body: CreateDonationRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user_id: Optional[uuid.UUID] = Depends(get_optional_user_id),
):
    """Create a PENDING donation and return what the PayHere checkout needs."""
    service = CheckoutService(db)
    checkout = unwrap(await service.create_donation(
        amount=body.amount,
        donor_name=body.donor_name,
        donor_email=body.donor_email,
        donor_phone=body.donor_phone,
        is_anonymous=body.is_anonymous,
        message=body.message,
        frequency=body.frequency,
        user_id=user_id,
        ip_address=client_ip(request),
    ))

    order = checkout.order
    return {
        "success": True,
        "donation": {
            "id": str(order.id),
            "orderId": order.external_order_id,
            "amount": float(order.amount),
            "currency": order.currency,
        },
        "paymentData": checkout.payment_data,
    }
