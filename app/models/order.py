"""Order model - payment and donation orders tracked through PayHere."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any

from sqlalchemy import String, DateTime, Numeric, JSON, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.fsm.states import OrderStatus, OrderKind


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(Base):
    """
    Payment or donation order.
    external_order_id is the correlator PayHere echoes back in notifications.
    Status is only written by OrderLedger.
    """

    __tablename__ = "payment_orders"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # Order ID sent to PayHere (unique)
    external_order_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )

    kind: Mapped[str] = mapped_column(
        String(30),
        default=OrderKind.DONATION.value,
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        default="LKR",
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=OrderStatus.PENDING.value,
        nullable=False,
        index=True,
    )

    # PayHere payment reference, set once the gateway confirms
    external_payment_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )

    # Last raw status code / message reported by PayHere or an admin
    gateway_status_code: Mapped[Optional[str]] = mapped_column(
        String(10),
        nullable=True,
    )

    status_message: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    payment_method: Mapped[Optional[str]] = mapped_column(
        String(30),
        nullable=True,
    )

    # Reason given for a void or refund
    status_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    # Paying user (null for guest donations)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        index=True,
    )

    # Kind-specific details, validated by app.models.order_details
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
    )

    # Timestamps
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
        return f"<Order {self.external_order_id} {self.status}>"

    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)
