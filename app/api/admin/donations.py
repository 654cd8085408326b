"""
Admin Donation Endpoints.
Manual complete, void and refund, listing, metrics and CSV export.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_admin_user
from app.api.responses import unwrap
from app.database import get_db
from app.fsm.states import OrderKind, OrderStatus
from app.models.order import Order
from app.models.order_details import DonationDetails, parse_order_details
from app.services.donation_export import (
    DonationExportFilter,
    export_filename,
    find_donations,
    render_csv,
)
from app.services.notification_service import (
    deliver_payment_notification,
    deliver_refund_notification,
)
from app.services.order_ledger import OrderLedger

router = APIRouter(dependencies=[Depends(get_admin_user)])
logger = logging.getLogger(__name__)


class CompleteDonationRequest(BaseModel):
    """Request body for manually completing a donation."""

    model_config = ConfigDict(populate_by_name=True)

    payment_id: Optional[str] = Field(None, alias="paymentId")
    status_message: Optional[str] = Field(None, alias="statusMessage")
    method: Optional[str] = None


class VoidDonationRequest(BaseModel):
    reason: Optional[str] = None


class RefundDonationRequest(BaseModel):
    reason: Optional[str] = None
    notes: Optional[str] = None


def serialize_order(order: Order) -> dict:
    data = {
        "id": str(order.id),
        "orderId": order.external_order_id,
        "kind": order.kind,
        "amount": float(order.amount),
        "currency": order.currency,
        "paymentStatus": order.status,
        "paymentId": order.external_payment_id,
        "paymentMethod": order.payment_method,
        "createdAt": order.created_at.isoformat() if order.created_at else None,
    }
    try:
        details = parse_order_details(order.details)
    except ValueError:
        logger.warning(f"Order {order.external_order_id} has malformed details")
        details = None
    if isinstance(details, DonationDetails):
        data.update({
            "donorName": details.donor_name,
            "donorEmail": details.donor_email,
            "isAnonymous": details.is_anonymous,
        })
    return data


@router.get("/donations")
async def list_donations(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    status: Optional[OrderStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """List donations, newest first."""
    ledger = OrderLedger(db)
    items, total = await ledger.list_orders(
        kind=OrderKind.DONATION,
        status=status,
        page=page,
        page_size=page_size,
    )
    return {
        "success": True,
        "data": {
            "items": [serialize_order(o) for o in items],
            "total": total,
            "page": page,
            "pageSize": page_size,
        },
    }


@router.get("/donations/metrics")
async def donation_metrics(db: AsyncSession = Depends(get_db)):
    """Donation KPIs over completed donations."""
    ledger = OrderLedger(db)
    return {"success": True, "data": await ledger.metrics(OrderKind.DONATION)}


@router.get("/donations/export")
async def export_donations(
    status: Optional[OrderStatus] = Query(None),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    donor_email: Optional[str] = Query(None, alias="donorEmail"),
    donor_name: Optional[str] = Query(None, alias="donorName"),
    min_amount: Optional[Decimal] = Query(None, alias="minAmount", ge=0),
    max_amount: Optional[Decimal] = Query(None, alias="maxAmount", ge=0),
    anonymous_only: bool = Query(False, alias="anonymousOnly"),
    db: AsyncSession = Depends(get_db),
):
    """Download matching donations as CSV."""
    filters = DonationExportFilter(
        status=status,
        date_from=date_from,
        date_to=date_to,
        donor_email=donor_email,
        donor_name=donor_name,
        min_amount=min_amount,
        max_amount=max_amount,
        anonymous_only=anonymous_only,
    )
    donations = await find_donations(db, filters)
    logger.info(f"Exporting {len(donations)} donations")

    return Response(
        content=render_csv(donations),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )


@router.post("/donations/{order_id}/complete")
async def complete_donation(
    order_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    body: Optional[CompleteDonationRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Manually mark a donation as COMPLETED.

    Only PENDING or PROCESSING donations can be completed.
    """
    body = body or CompleteDonationRequest()
    ledger = OrderLedger(db)

    change = unwrap(await ledger.mark_completed_manually(
        order_id,
        payment_id=body.payment_id,
        status_message=body.status_message,
        method=body.method,
    ))
    await db.commit()

    if change.applied:
        logger.info(f"Order {change.order.external_order_id} marked COMPLETED by admin")
        background_tasks.add_task(deliver_payment_notification, change.order.id)

    return {
        "success": True,
        "data": {
            "id": str(change.order.id),
            "paymentStatus": change.order.status,
            "amount": float(change.order.amount),
        },
    }


@router.post("/donations/{order_id}/void")
async def void_donation(
    order_id: uuid.UUID,
    body: Optional[VoidDonationRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    """Void a PENDING donation by marking it CANCELLED."""
    body = body or VoidDonationRequest()
    ledger = OrderLedger(db)

    change = unwrap(await ledger.void_order(order_id, reason=body.reason))
    await db.commit()

    logger.info(
        f"Order {change.order.external_order_id} voided by admin: "
        f"{change.previous_status.value} -> {change.order.status} "
        f"(reason: {body.reason or 'No reason provided'})"
    )

    return {
        "success": True,
        "message": "Donation voided successfully",
        "data": {
            "id": str(change.order.id),
            "paymentStatus": change.order.status,
        },
    }


@router.post("/donations/{order_id}/refund")
async def refund_donation(
    order_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    body: Optional[RefundDonationRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Mark a COMPLETED donation as REFUNDED.

    This only records the refund; the money is returned through the
    PayHere merchant portal.
    """
    body = body or RefundDonationRequest()
    ledger = OrderLedger(db)

    change = unwrap(await ledger.mark_refunded(order_id, reason=body.reason))
    await db.commit()

    if change.applied:
        logger.info(
            f"Order {change.order.external_order_id} marked REFUNDED by admin "
            f"(amount: {change.order.amount}, reason: {body.reason or 'No reason provided'}, "
            f"notes: {body.notes or 'No notes'})"
        )
        background_tasks.add_task(deliver_refund_notification, change.order.id, body.reason)

    return {
        "success": True,
        "message": (
            "Donation marked as refunded. Please process the actual refund "
            "through the PayHere dashboard."
        ),
        "data": {
            "id": str(change.order.id),
            "paymentStatus": change.order.status,
            "amount": float(change.order.amount),
        },
    }
