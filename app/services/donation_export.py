"""
Donation CSV export for the admin dashboard.
"""

import csv
import io
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.fsm.states import OrderKind, OrderStatus
from app.models.order import Order
from app.models.order_details import DonationDetails, parse_order_details

logger = logging.getLogger(__name__)

EXPORT_HEADERS = [
    "Donation ID",
    "Date",
    "Amount (LKR)",
    "Status",
    "Payment Method",
    "Donor Name",
    "Donor Email",
    "Donor Phone",
    "Is Anonymous",
    "Message",
    "PayHere Order ID",
    "PayHere Payment ID",
    "User ID",
    "Source",
    "IP Address",
]


@dataclass
class DonationExportFilter:
    status: Optional[OrderStatus] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    donor_email: Optional[str] = None
    donor_name: Optional[str] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    anonymous_only: bool = False

    def matches_donor(self, details: DonationDetails) -> bool:
        if self.anonymous_only and not details.is_anonymous:
            return False
        if self.donor_email and self.donor_email.lower() not in (details.donor_email or "").lower():
            return False
        if self.donor_name and self.donor_name.lower() not in details.donor_name.lower():
            return False
        return True


async def find_donations(db: AsyncSession, filters: DonationExportFilter) -> List[Order]:
    """Donations matching the export filters, newest first."""
    query = select(Order).where(Order.kind == OrderKind.DONATION.value)

    if filters.status is not None:
        query = query.where(Order.status == filters.status.value)
    if filters.date_from is not None:
        query = query.where(
            Order.created_at >= datetime.combine(filters.date_from, time.min, tzinfo=timezone.utc)
        )
    if filters.date_to is not None:
        # date_to covers the whole day
        query = query.where(
            Order.created_at <= datetime.combine(filters.date_to, time.max, tzinfo=timezone.utc)
        )
    if filters.min_amount is not None:
        query = query.where(Order.amount >= filters.min_amount)
    if filters.max_amount is not None:
        query = query.where(Order.amount <= filters.max_amount)

    result = await db.execute(query.order_by(Order.created_at.desc()))

    donations = []
    for order in result.scalars().all():
        try:
            details = parse_order_details(order.details)
        except ValueError:
            logger.warning(f"Order {order.external_order_id} has malformed details, skipped in export")
            continue
        if not isinstance(details, DonationDetails):
            details = DonationDetails()
        if filters.matches_donor(details):
            donations.append(order)
    return donations


def donation_row(order: Order) -> list:
    details = parse_order_details(order.details)
    if not isinstance(details, DonationDetails):
        details = DonationDetails()

    return [
        str(order.id),
        order.created_at.isoformat() if order.created_at else "",
        f"{order.amount:.2f}",
        order.status,
        order.payment_method or "",
        "Anonymous" if details.is_anonymous else details.donor_name,
        details.donor_email or "",
        details.donor_phone or "",
        "Yes" if details.is_anonymous else "No",
        details.message or "",
        order.external_order_id,
        order.external_payment_id or "",
        str(order.user_id) if order.user_id else "",
        details.source,
        details.ip_address or "",
    ]


def render_csv(orders: Iterable[Order]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_HEADERS)
    for order in orders:
        writer.writerow(donation_row(order))
    return buffer.getvalue()


def export_filename(today: Optional[date] = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    return f"donations_export_{today.isoformat()}.csv"
