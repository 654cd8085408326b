"""SessionRefund model - refund owed for a cancelled therapy session."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, Numeric, Text, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.fsm.states import RefundRequestStatus
from app.models.order import utcnow


class SessionRefund(Base):
    """
    Refund request created when a parent cancels a paid session.
    Paid out by bank transfer; admins move it through RefundRequestStatus.
    """

    __tablename__ = "session_refunds"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # One refund per session
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("therapy_sessions.id"),
        unique=True,
        nullable=False,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
    )

    # Snapshot of the refund decision at cancellation time
    original_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    refund_percentage: Mapped[int] = mapped_column(nullable=False)
    hours_before_session: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)

    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Payout bank details
    bank_account_name: Mapped[str] = mapped_column(String(255), nullable=False)
    bank_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_number: Mapped[str] = mapped_column(String(50), nullable=False)
    swift_code: Mapped[Optional[str]] = mapped_column(String(11), nullable=True)

    refund_status: Mapped[str] = mapped_column(
        String(20),
        default=RefundRequestStatus.PENDING.value,
        nullable=False,
        index=True,
    )

    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Set when the payout is DONE
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<SessionRefund session={self.session_id} {self.refund_status}>"
