"""
Order state machine - the directed graph of allowed status changes.
"""

from typing import Dict, FrozenSet

from app.fsm.states import OrderStatus


# Direct edges. PROCESSING is optional: PayHere often reports success or
# failure for an order it never reported as processing, so its outgoing
# edges are also reachable from PENDING.
TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.PROCESSING,
        OrderStatus.COMPLETED,
        OrderStatus.FAILED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.PROCESSING: frozenset({
        OrderStatus.COMPLETED,
        OrderStatus.FAILED,
    }),
    OrderStatus.COMPLETED: frozenset({
        OrderStatus.REFUNDED,
    }),
    OrderStatus.FAILED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


class OrderStateMachine:
    """
    Answers whether an order may move from one status to another.

    Strictly enforces the graph: nothing moves backwards, and terminal
    statuses only accept a re-application of themselves.
    """

    transitions = TRANSITIONS

    @classmethod
    def can_transition(cls, current: OrderStatus, target: OrderStatus) -> bool:
        return target in cls.transitions.get(current, frozenset())

    @classmethod
    def allowed_targets(cls, current: OrderStatus) -> FrozenSet[OrderStatus]:
        return cls.transitions.get(current, frozenset())

    @classmethod
    def describe_rejection(cls, current: OrderStatus, target: OrderStatus) -> str:
        allowed = sorted(s.value for s in cls.allowed_targets(current))
        if not allowed:
            return f"Order is {current.value} (terminal); cannot move to {target.value}"
        return (
            f"Cannot move order from {current.value} to {target.value}. "
            f"Allowed: {', '.join(allowed)}"
        )
