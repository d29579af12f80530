"""
Order lifecycle: basket building, checkout commit and status transitions.
"""

from dineops.services.orders.builder import OrderBuilder, basket_total, line_from_food
from dineops.services.orders.lifecycle import (
    TRANSITIONS,
    assert_transition,
    can_transition,
    initial_status,
    is_terminal,
)
from dineops.services.orders.pipeline import OrderCommitPipeline, validate_customer

__all__ = [
    "OrderBuilder",
    "OrderCommitPipeline",
    "TRANSITIONS",
    "assert_transition",
    "basket_total",
    "can_transition",
    "initial_status",
    "is_terminal",
    "line_from_food",
    "validate_customer",
]
