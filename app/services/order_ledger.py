"""
Order Ledger - the only writer of order status.

Every status change goes through ``apply_status``, which checks the
transition graph and writes with a compare-and-set UPDATE conditioned on
the status it observed. Two writers racing on the same order cannot both
win: the loser re-reads and either finds its change already applied
(idempotent no-op) or finds it no longer valid.
"""

import uuid
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional, Tuple, Union

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import ErrorKind, Result
from app.fsm.machine import OrderStateMachine
from app.fsm.states import OrderKind, OrderStatus
from app.models.order import Order, utcnow
from app.models.order_details import (
    DonationDetails,
    SessionPaymentDetails,
    dump_order_details,
    parse_order_details,
)
from app.services.payhere_gateway import generate_order_id

logger = logging.getLogger(__name__)

MINOR_UNIT = Decimal("0.01")
MAX_AMOUNT = Decimal("100000000")


@dataclass(frozen=True)
class StatusChange:
    """Outcome of a status application. applied is False for idempotent replays."""

    order: Order
    previous_status: OrderStatus
    applied: bool

    @property
    def status(self) -> OrderStatus:
        return self.order.order_status


class OrderLedger:
    """Service for creating orders and moving them through their lifecycle."""

    MAX_ORDER_ID_ATTEMPTS = 5
    MAX_WRITE_ATTEMPTS = 3

    def __init__(
        self,
        db: AsyncSession,
        order_id_generator: Callable[[str], str] = generate_order_id,
    ):
        self.db = db
        self.order_id_generator = order_id_generator

    # ------------------------------------------------------------------
    # Creation and lookup
    # ------------------------------------------------------------------

    async def create_order(
        self,
        kind: OrderKind,
        amount: Union[Decimal, int, float, str],
        currency: Optional[str] = None,
        details: Union[DonationDetails, SessionPaymentDetails, None] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> Result[Order]:
        """Insert a PENDING order with a fresh, unique external order id."""
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            return Result.failure(ErrorKind.VALIDATION, "Invalid amount")

        if not amount.is_finite() or amount <= 0:
            return Result.failure(ErrorKind.VALIDATION, "Amount must be greater than zero")

        # Numeric(10, 2): what we store is exactly what PayHere is asked to charge
        if amount >= MAX_AMOUNT:
            return Result.failure(ErrorKind.VALIDATION, f"Amount must be less than {MAX_AMOUNT:,}")

        if amount != amount.quantize(MINOR_UNIT):
            return Result.failure(ErrorKind.VALIDATION, "Amount cannot have more than two decimal places")

        if details is not None and details.kind != kind.value:
            return Result.failure(
                ErrorKind.VALIDATION,
                f"{details.kind} details cannot be attached to a {kind.value} order",
            )

        external_order_id = await self._new_external_order_id(kind)
        if external_order_id is None:
            return Result.failure(ErrorKind.INTERNAL, "Could not generate a unique order id")

        order = Order(
            external_order_id=external_order_id,
            kind=kind.value,
            amount=amount,
            currency=currency or settings.payhere_currency,
            status=OrderStatus.PENDING.value,
            user_id=user_id,
            details=dump_order_details(details) if details is not None else None,
        )
        self.db.add(order)
        await self.db.flush()

        logger.info(f"Created {kind.value} order {external_order_id} for {amount} {order.currency}")
        return Result.success(order)

    async def _new_external_order_id(self, kind: OrderKind) -> Optional[str]:
        for attempt in range(1, self.MAX_ORDER_ID_ATTEMPTS + 1):
            candidate = self.order_id_generator(kind.order_id_prefix)
            if await self.get_by_external_id(candidate) is None:
                return candidate
            logger.warning(f"Order id collision on {candidate} (attempt {attempt})")
        return None

    async def get_order(self, order_id: uuid.UUID) -> Optional[Order]:
        result = await self.db.execute(
            select(Order).where(Order.id == order_id)
        )
        return result.scalar_one_or_none()

    async def get_by_external_id(self, external_order_id: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order).where(Order.external_order_id == external_order_id)
        )
        return result.scalar_one_or_none()

    async def find_paid_session_order(
        self,
        session_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Optional[Order]:
        """The payer's COMPLETED payment for a therapy session, if any."""
        result = await self.db.execute(
            select(Order)
            .where(Order.kind == OrderKind.SESSION_PAYMENT.value)
            .where(Order.user_id == user_id)
            .where(Order.status == OrderStatus.COMPLETED.value)
            .order_by(Order.created_at.desc())
        )
        for order in result.scalars().all():
            try:
                details = parse_order_details(order.details)
            except ValueError:
                logger.warning(f"Order {order.external_order_id} has malformed details")
                continue
            if isinstance(details, SessionPaymentDetails) and details.session_id == session_id:
                return order
        return None

    async def _load_for_update(self, order_id: uuid.UUID) -> Optional[Order]:
        result = await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    async def apply_status(
        self,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        external_payment_id: Optional[str] = None,
        gateway_status_code: Optional[str] = None,
        status_message: Optional[str] = None,
        payment_method: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Result[StatusChange]:
        """
        Move an order to new_status if the transition graph allows it.

        Re-applying the status the order already has, with the same (or no)
        payment id, succeeds with applied=False. If the order has no payment
        id yet, the supplied one is recorded without counting as a change.
        """
        order = await self._load_for_update(order_id)
        if not order:
            return Result.failure(ErrorKind.NOT_FOUND, f"Order {order_id} not found")

        for _ in range(self.MAX_WRITE_ATTEMPTS):
            current = order.order_status

            if current == new_status:
                if (
                    external_payment_id
                    and order.external_payment_id
                    and external_payment_id != order.external_payment_id
                ):
                    return Result.failure(
                        ErrorKind.INVALID_TRANSITION,
                        f"Order is already {current.value} with payment "
                        f"{order.external_payment_id}, not {external_payment_id}",
                    )

                if external_payment_id and not order.external_payment_id:
                    # e.g. completed by an admin before PayHere's confirmation arrived
                    backfilled = await self.db.execute(
                        update(Order)
                        .where(Order.id == order.id)
                        .where(Order.status == current.value)
                        .where(Order.external_payment_id.is_(None))
                        .values(external_payment_id=external_payment_id, updated_at=utcnow())
                        .execution_options(synchronize_session=False)
                    )
                    await self.db.refresh(order)
                    if backfilled.rowcount != 1:
                        continue
                    logger.info(
                        f"Order {order.external_order_id}: recorded payment {external_payment_id}"
                    )

                return Result.success(StatusChange(order, current, applied=False))

            if not OrderStateMachine.can_transition(current, new_status):
                return Result.failure(
                    ErrorKind.INVALID_TRANSITION,
                    OrderStateMachine.describe_rejection(current, new_status),
                )

            values = {"status": new_status.value, "updated_at": utcnow()}
            if external_payment_id:
                values["external_payment_id"] = external_payment_id
            if gateway_status_code is not None:
                values["gateway_status_code"] = gateway_status_code
            if status_message is not None:
                values["status_message"] = status_message
            if payment_method is not None:
                values["payment_method"] = payment_method
            if reason is not None:
                values["status_reason"] = reason

            result = await self.db.execute(
                update(Order)
                .where(Order.id == order.id)
                .where(Order.status == current.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.db.refresh(order)

            if result.rowcount == 1:
                logger.info(
                    f"Order {order.external_order_id}: {current.value} -> {new_status.value}"
                )
                return Result.success(StatusChange(order, current, applied=True))

            # Someone else moved the order between our read and our write
            logger.info(
                f"Order {order.external_order_id} changed concurrently "
                f"(expected {current.value}, now {order.status}); re-evaluating"
            )

        return Result.failure(
            ErrorKind.INTERNAL,
            f"Order {order.external_order_id} kept changing; gave up after "
            f"{self.MAX_WRITE_ATTEMPTS} attempts",
        )

    async def void_order(self, order_id: uuid.UUID, reason: Optional[str] = None) -> Result[StatusChange]:
        """Cancel a PENDING order. Any other status is INVALID_STATE."""
        order = await self.get_order(order_id)
        if not order:
            return Result.failure(ErrorKind.NOT_FOUND, "Order not found")

        if order.status != OrderStatus.PENDING.value:
            return Result.failure(
                ErrorKind.INVALID_STATE,
                f"Cannot void order with status {order.status}. Only PENDING orders can be voided.",
            )

        result = await self.apply_status(
            order.id,
            OrderStatus.CANCELLED,
            reason=reason or "No reason provided",
        )
        return self._as_state_error(result)

    async def mark_completed_manually(
        self,
        order_id: uuid.UUID,
        payment_id: Optional[str] = None,
        status_message: Optional[str] = None,
        method: Optional[str] = None,
    ) -> Result[StatusChange]:
        """Admin override: complete a PENDING or PROCESSING order."""
        order = await self.get_order(order_id)
        if not order:
            return Result.failure(ErrorKind.NOT_FOUND, "Order not found")

        current = order.order_status
        if current == OrderStatus.COMPLETED:
            return Result.success(StatusChange(order, current, applied=False))

        if current not in (OrderStatus.PENDING, OrderStatus.PROCESSING):
            return Result.failure(
                ErrorKind.INVALID_STATE,
                f"Cannot complete an order with status {current.value}. "
                "Only PENDING or PROCESSING can be completed.",
            )

        result = await self.apply_status(
            order.id,
            OrderStatus.COMPLETED,
            external_payment_id=payment_id,
            status_message=status_message,
            payment_method=method,
        )
        return self._as_state_error(result)

    async def mark_refunded(self, order_id: uuid.UUID, reason: Optional[str] = None) -> Result[StatusChange]:
        """
        Admin refund marker for a COMPLETED order.

        The money itself is returned through the PayHere merchant portal.
        """
        order = await self.get_order(order_id)
        if not order:
            return Result.failure(ErrorKind.NOT_FOUND, "Order not found")

        current = order.order_status
        if current == OrderStatus.REFUNDED:
            return Result.success(StatusChange(order, current, applied=False))

        if current != OrderStatus.COMPLETED:
            return Result.failure(
                ErrorKind.INVALID_STATE,
                f"Cannot refund order with status {current.value}. Only COMPLETED orders can be refunded.",
            )

        result = await self.apply_status(
            order.id,
            OrderStatus.REFUNDED,
            reason=reason or "No reason provided",
        )
        return self._as_state_error(result)

    @staticmethod
    def _as_state_error(result: Result[StatusChange]) -> Result[StatusChange]:
        # Admin actions report a lost race as a state problem, not a graph problem
        if result.error == ErrorKind.INVALID_TRANSITION:
            return Result.failure(ErrorKind.INVALID_STATE, result.message)
        return result

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def list_orders(
        self,
        kind: Optional[OrderKind] = None,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[Order], int]:
        """Page through orders, newest first. Returns (items, total)."""
        page = max(page, 1)
        page_size = min(max(page_size, 1), 100)

        query = select(Order)
        count_query = select(func.count(Order.id))
        if kind is not None:
            query = query.where(Order.kind == kind.value)
            count_query = count_query.where(Order.kind == kind.value)
        if status is not None:
            query = query.where(Order.status == status.value)
            count_query = count_query.where(Order.status == status.value)

        result = await self.db.execute(
            query.order_by(Order.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        total = (await self.db.execute(count_query)).scalar() or 0
        return list(result.scalars().all()), total

    async def metrics(
        self,
        kind: OrderKind = OrderKind.DONATION,
        now: Optional[datetime] = None,
    ) -> dict:
        """
        Completed-order KPIs: totals, last 7/30 days, status breakdown,
        six month trend and top donors.
        """
        now = now or datetime.now(timezone.utc)

        result = await self.db.execute(
            select(Order)
            .where(Order.kind == kind.value)
            .where(Order.status == OrderStatus.COMPLETED.value)
        )
        completed = list(result.scalars().all())

        def created(order: Order) -> datetime:
            value = order.created_at
            return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

        def window(days: int) -> List[Order]:
            since = now - timedelta(days=days)
            return [o for o in completed if created(o) >= since]

        def total(orders: List[Order]) -> Decimal:
            return sum((o.amount for o in orders), Decimal("0"))

        total_amount = total(completed)
        count = len(completed)
        last_7 = window(7)
        last_30 = window(30)

        breakdown_result = await self.db.execute(
            select(Order.status, func.count(Order.id))
            .where(Order.kind == kind.value)
            .group_by(Order.status)
        )
        status_counts = {status: n for status, n in breakdown_result.all()}

        trend = defaultdict(lambda: {"count": 0, "total": Decimal("0")})
        for order in window(183):
            month = created(order).strftime("%Y-%m")
            trend[month]["count"] += 1
            trend[month]["total"] += order.amount

        donors = defaultdict(lambda: {"name": None, "count": 0, "total": Decimal("0")})
        for order in completed:
            try:
                details = parse_order_details(order.details)
            except ValueError:
                logger.warning(f"Order {order.external_order_id} has malformed details")
                continue
            if not isinstance(details, DonationDetails):
                continue
            if details.is_anonymous or not details.donor_email:
                continue
            entry = donors[details.donor_email]
            entry["name"] = details.donor_name
            entry["count"] += 1
            entry["total"] += order.amount

        top_donors = sorted(donors.items(), key=lambda item: item[1]["total"], reverse=True)[:5]

        return {
            "totalAmount": float(total_amount),
            "totalCount": count,
            "averageAmount": float(total_amount / count) if count else 0.0,
            "last7Days": {"total": float(total(last_7)), "count": len(last_7)},
            "last30Days": {"total": float(total(last_30)), "count": len(last_30)},
            "statusBreakdown": status_counts,
            "monthlyTrend": [
                {"month": month, "count": data["count"], "total": float(round(data["total"], 2))}
                for month, data in sorted(trend.items())
            ],
            "topDonors": [
                {"email": email, "name": data["name"], "count": data["count"], "total": float(data["total"])}
                for email, data in top_donors
            ],
        }
