"""FSM package for order lifecycle management."""

from app.fsm.states import OrderStatus, OrderKind, PayHereStatusCode, order_status_for_code
from app.fsm.machine import OrderStateMachine

__all__ = [
    "OrderStatus",
    "OrderKind",
    "PayHereStatusCode",
    "order_status_for_code",
    "OrderStateMachine",
]
