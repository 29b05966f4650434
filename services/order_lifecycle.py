"""
Order lifecycle state machine.

    pending --claim/assign--> assigned --pickup--> picked_up --complete--> delivered
       \\__________________________\\___________________\\--cancel--> cancelled

delivered and cancelled are terminal: any event against them is stale.
This module is pure; persistence and the conditional writes live in
order_service.
"""
import enum
from typing import Optional

from models.order import OrderStatus
from services.exceptions import StaleStateError, InvalidTransitionError

class OrderEvent(str, enum.Enum):
    CLAIM = "claim"
    ASSIGN = "assign"
    PICKUP = "pickup"
    COMPLETE = "complete"
    CANCEL = "cancel"

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

ACTIVE_STATUSES = frozenset({OrderStatus.ASSIGNED, OrderStatus.PICKED_UP})

# Statuses in which assigned_driver_id must be set
DRIVER_BOUND_STATUSES = frozenset({OrderStatus.ASSIGNED, OrderStatus.PICKED_UP, OrderStatus.DELIVERED})

TRANSITIONS = {
    OrderStatus.PENDING: {
        OrderEvent.CLAIM: OrderStatus.ASSIGNED,
        OrderEvent.ASSIGN: OrderStatus.ASSIGNED,
        OrderEvent.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.ASSIGNED: {
        OrderEvent.PICKUP: OrderStatus.PICKED_UP,
        OrderEvent.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.PICKED_UP: {
        OrderEvent.COMPLETE: OrderStatus.DELIVERED,
        OrderEvent.CANCEL: OrderStatus.CANCELLED,
    },
    OrderStatus.DELIVERED: {},
    OrderStatus.CANCELLED: {},
}

def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATUSES

def can_apply(current: OrderStatus, event: OrderEvent) -> bool:
    return event in TRANSITIONS.get(current, {})

def next_status(current: OrderStatus, event: OrderEvent) -> OrderStatus:
    """Target status for event, or raise when the event is not legal from current"""
    if is_terminal(current):
        raise StaleStateError(
            f"Order is already {current.value}; cannot {event.value}",
            current_status=current.value,
        )

    target = TRANSITIONS[current].get(event)
    if target is None:
        raise InvalidTransitionError(
            f"Cannot {event.value} an order that is {current.value}",
            current_status=current.value,
        )
    return target

def driver_invariant_holds(status: OrderStatus, assigned_driver_id: Optional[int]) -> bool:
    """assigned_driver_id is set for assigned/picked_up/delivered and unset for pending"""
    if status in DRIVER_BOUND_STATUSES:
        return assigned_driver_id is not None
    if status == OrderStatus.PENDING:
        return assigned_driver_id is None
    # cancelled keeps whatever driver it last had
    return True
