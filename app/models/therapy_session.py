"""TherapySession model - the slice of a booked session that payments need."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, Numeric
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.fsm.states import TherapySessionStatus
from app.models.order import utcnow


class TherapySession(Base):
    """
    Scheduled therapy session.
    Owned by the scheduling side of the platform; read here for refunds
    and session payments.
    """

    __tablename__ = "therapy_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # Rate charged when the session was booked
    booked_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 2),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=TherapySessionStatus.SCHEDULED.value,
        nullable=False,
    )

    # Parent/guardian who booked and pays for the session
    parent_user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
    )

    patient_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    therapist_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<TherapySession {self.id} {self.status}>"
