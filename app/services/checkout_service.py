"""
Checkout Service - create orders and the PayHere checkout payload for them.
"""

import uuid
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ErrorKind, Result
from app.fsm.states import DonationFrequency, OrderKind, TherapySessionStatus
from app.models.order import Order
from app.models.order_details import DonationDetails, SessionPaymentDetails
from app.models.therapy_session import TherapySession
from app.services.order_ledger import OrderLedger
from app.services.payhere_gateway import PayHereCustomer, PayHereGateway

logger = logging.getLogger(__name__)

ANONYMOUS_CUSTOMER = PayHereCustomer(
    first_name="Anonymous",
    last_name="Donor",
    email="anonymous@sparks.help",
    phone="0000000000",
)


@dataclass(frozen=True)
class Checkout:
    order: Order
    payment_data: Dict[str, Any]


class CheckoutService:
    """Service for starting donation and session payments."""

    def __init__(self, db: AsyncSession, gateway: Optional[PayHereGateway] = None):
        self.db = db
        self.gateway = gateway or PayHereGateway()
        self.ledger = OrderLedger(db)

    async def create_donation(
        self,
        amount: Decimal,
        donor_name: Optional[str] = None,
        donor_email: Optional[str] = None,
        donor_phone: Optional[str] = None,
        is_anonymous: bool = False,
        message: Optional[str] = None,
        frequency: DonationFrequency = DonationFrequency.ONE_TIME,
        user_id: Optional[uuid.UUID] = None,
        ip_address: Optional[str] = None,
    ) -> Result[Checkout]:
        """Create a PENDING donation order and its checkout fields."""
        if amount is None or amount <= 0:
            return Result.failure(ErrorKind.VALIDATION, "Invalid donation amount")

        if not is_anonymous and (not donor_email or not donor_name):
            return Result.failure(
                ErrorKind.VALIDATION,
                "Donor name and email are required for non-anonymous donations",
            )

        try:
            details = DonationDetails(
                donor_name="Anonymous" if is_anonymous else donor_name,
                donor_email=None if is_anonymous else donor_email,
                donor_phone=None if is_anonymous else donor_phone,
                is_anonymous=is_anonymous,
                message=message or None,
                frequency=frequency,
                ip_address=ip_address,
            )
        except ValidationError as e:
            logger.info(f"Rejected donation details: {e.errors()}")
            return Result.failure(ErrorKind.VALIDATION, "Invalid donor details")

        created = await self.ledger.create_order(
            OrderKind.DONATION,
            amount,
            details=details,
            user_id=user_id,
        )
        if not created.ok:
            return Result.failure(created.error, created.message)
        order = created.value

        if is_anonymous:
            customer = ANONYMOUS_CUSTOMER
        else:
            first, _, rest = donor_name.strip().partition(" ")
            customer = PayHereCustomer(
                first_name=first or "Donor",
                last_name=rest.strip(),
                email=donor_email,
                phone=donor_phone or "0000000000",
            )

        payment_data = self.gateway.build_payment_request(
            order,
            customer,
            items=f"Donation to SPARKS - {frequency.value.replace('_', ' ')}",
            custom_1=str(order.id),
            custom_2=frequency.value,
        )
        return Result.success(Checkout(order=order, payment_data=payment_data))

    async def create_session_payment(
        self,
        session_id: uuid.UUID,
        user_id: uuid.UUID,
        first_name: str,
        last_name: str,
        email: str,
        phone: str,
        address: str = "",
        city: str = "Colombo",
    ) -> Result[Checkout]:
        """Create a PENDING payment order for a booked therapy session."""
        result = await self.db.execute(
            select(TherapySession)
            .where(TherapySession.id == session_id)
            .where(TherapySession.parent_user_id == user_id)
        )
        session = result.scalar_one_or_none()
        if not session:
            return Result.failure(ErrorKind.NOT_FOUND, "Session not found or unauthorized")

        if session.status in (
            TherapySessionStatus.CANCELLED.value,
            TherapySessionStatus.COMPLETED.value,
        ):
            return Result.failure(
                ErrorKind.INVALID_STATE,
                f"Cannot pay for a {session.status.lower()} session",
            )

        if not session.booked_rate or session.booked_rate <= 0:
            return Result.failure(ErrorKind.VALIDATION, "Session has no booked rate")

        try:
            details = SessionPaymentDetails(
                session_id=session.id,
                patient_name=session.patient_name,
                payer_first_name=first_name,
                payer_last_name=last_name,
                payer_email=email,
                payer_phone=phone,
            )
        except ValidationError as e:
            logger.info(f"Rejected session payment details: {e.errors()}")
            return Result.failure(ErrorKind.VALIDATION, "Invalid customer information")

        created = await self.ledger.create_order(
            OrderKind.SESSION_PAYMENT,
            session.booked_rate,
            details=details,
            user_id=user_id,
        )
        if not created.ok:
            return Result.failure(created.error, created.message)
        order = created.value

        customer = PayHereCustomer(
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            address=address,
            city=city or "Colombo",
        )
        payment_data = self.gateway.build_payment_request(
            order,
            customer,
            items=f"Therapy Session - {session.scheduled_at:%Y-%m-%d %H:%M}",
            custom_1=str(order.id),
            custom_2=str(session.id),
        )
        return Result.success(Checkout(order=order, payment_data=payment_data))
