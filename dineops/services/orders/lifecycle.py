"""
Order Status State Machine

One machine serves both checkout flows:

    pending ──► preparing ──► ready ──► served        (kitchen)
       │            │           │          │
       └────────────┴───────────┴──────────┴──► cancelled   (admin, terminal)

    paid                                             (creation only, terminal)

Which state an order starts in is decided by initial_status(flow) and
nowhere else.
"""

from dineops.core.exceptions import InvalidTransition
from dineops.schemas import CheckoutFlow, OrderStatus

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.SERVED, OrderStatus.CANCELLED}),
    OrderStatus.SERVED: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

# Both flows run after payment has been captured by the caller. A cart
# checkout enters the kitchen queue; a "buy now" order is recorded as paid
# and never enters it.
INITIAL_STATUS: dict[CheckoutFlow, OrderStatus] = {
    CheckoutFlow.CART: OrderStatus.PENDING,
    CheckoutFlow.BUY_NOW: OrderStatus.PAID,
}


def initial_status(flow: CheckoutFlow) -> OrderStatus:
    return INITIAL_STATUS[CheckoutFlow(flow)]


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return OrderStatus(target) in TRANSITIONS[OrderStatus(current)]


def assert_transition(current: OrderStatus, target: OrderStatus) -> OrderStatus:
    """
    Validate a status change.

    Raises:
        InvalidTransition: If the machine has no edge current → target
    """
    current, target = OrderStatus(current), OrderStatus(target)
    if not can_transition(current, target):
        raise InvalidTransition(current.value, target.value)
    return target


def is_terminal(status: OrderStatus) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES
