"""
PayHere Webhook Handler.
Verifies notification signatures and reconciles order status.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.responses import unwrap
from app.database import get_db
from app.services.notification_service import deliver_payment_notification
from app.services.reconciliation import ReconciliationCoordinator

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/payhere")
async def payhere_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """
    Handle PayHere payment notifications (form encoded).

    Responses:
    - 200 {success, status}: processed, including ignored out-of-order events
    - 400: missing fields or bad signature
    - 404: unknown order
    """
    try:
        form = await request.form()

        coordinator = ReconciliationCoordinator(
            db,
            notifier=lambda order_id: background_tasks.add_task(
                deliver_payment_notification, order_id
            ),
        )
        outcome = unwrap(await coordinator.reconcile(form))

        # Acknowledge only what is committed
        await db.commit()

        return {"success": True, "status": outcome.status.value}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error processing PayHere webhook: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process webhook")
