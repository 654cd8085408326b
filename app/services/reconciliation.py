"""
Reconciliation - apply PayHere notifications to the order ledger.

Steps for one notification:
1. Parse the form (MALFORMED_EVENT if required fields are missing)
2. Verify the signature (SIGNATURE_INVALID)
3. Find the order (NOT_FOUND)
4. Map the status code, unknown codes become FAILED
5. Apply the status; a rejected transition is acknowledged, not an error
6. Hand newly completed orders to the notifier, best effort
"""

import uuid
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import ErrorKind, Result
from app.fsm.states import OrderStatus, order_status_for_code
from app.models.order import Order
from app.services.order_ledger import OrderLedger
from app.services.payhere_gateway import PayHereGateway, WebhookEvent, parse_method, status_message

logger = logging.getLogger(__name__)

Notifier = Callable[[uuid.UUID], Any]


@dataclass(frozen=True)
class ReconciliationOutcome:
    order: Order
    target_status: OrderStatus
    applied: bool
    anomaly: Optional[str] = None

    @property
    def status(self) -> OrderStatus:
        return self.order.order_status


class ReconciliationCoordinator:
    """Runs a single gateway notification through verification and the ledger."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: Optional[PayHereGateway] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.db = db
        self.gateway = gateway or PayHereGateway()
        self.ledger = OrderLedger(db)
        self.notifier = notifier

    async def reconcile(self, form: Mapping[str, Any]) -> Result[ReconciliationOutcome]:
        parsed = WebhookEvent.from_form(form)
        if not parsed.ok:
            logger.warning(f"Malformed PayHere notification: {parsed.message}")
            return Result.failure(parsed.error, parsed.message)
        event = parsed.value

        logger.info(
            f"PayHere notification received for {event.external_order_id} "
            f"(status {event.status_code}, payment {event.external_payment_id})"
        )

        if not self.gateway.verify_notification(event):
            logger.warning(
                "Rejected PayHere notification with invalid signature",
                extra={"context": {
                    "security_event": "payhere_signature_invalid",
                    "order_id": event.external_order_id,
                    "merchant_id": event.merchant_id,
                    "status_code": event.status_code,
                }},
            )
            return Result.failure(ErrorKind.SIGNATURE_INVALID, "Invalid signature")

        order = await self.ledger.get_by_external_id(event.external_order_id)
        if not order:
            logger.error(f"Order not found for PayHere notification: {event.external_order_id}")
            return Result.failure(ErrorKind.NOT_FOUND, "Order not found")

        target = order_status_for_code(event.status_code)

        result = await self.ledger.apply_status(
            order.id,
            target,
            external_payment_id=event.external_payment_id,
            gateway_status_code=event.status_code,
            status_message=event.status_message or status_message(event.status_code),
            payment_method=parse_method(event.method),
        )

        if result.error == ErrorKind.INVALID_TRANSITION:
            # Out-of-order or duplicate delivery; acknowledge so PayHere stops retrying
            logger.warning(
                f"Ignoring PayHere status {event.status_code} for order "
                f"{order.external_order_id}: {result.message}"
            )
            return Result.success(ReconciliationOutcome(
                order=order,
                target_status=target,
                applied=False,
                anomaly=result.message,
            ))

        if not result.ok:
            return Result.failure(result.error, result.message)

        change = result.value
        if change.applied and change.status == OrderStatus.COMPLETED:
            self._emit_completed(change.order)

        return Result.success(ReconciliationOutcome(
            order=change.order,
            target_status=target,
            applied=change.applied,
        ))

    def _emit_completed(self, order: Order) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier(order.id)
        except Exception as e:
            logger.error(
                f"Could not schedule notification for order {order.external_order_id}: {e}",
                exc_info=True,
            )
