from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, List, Optional

from services.picking_service.state_machine import all_processed

from .exceptions import InvalidTransitionError, PickingIncompleteError
from .schemas import Order, OrderStatus


class OrderAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    START_PICKING = "start_picking"
    MARK_READY = "mark_ready"
    ASSIGN_DRIVER = "assign_driver"
    COMPLETE = "complete"


class UpdatePolicy(str, Enum):
    # Local state changes only after the backend confirms
    PESSIMISTIC = "pessimistic"
    # Local state changes first; backend failures are logged, not surfaced
    OPTIMISTIC = "optimistic"
    # No server call and no status change (navigation only)
    LOCAL = "local"
    # Driven by the delivery side; observed through refresh only
    EXTERNAL = "external"


@dataclass(frozen=True)
class Transition:
    action: OrderAction
    sources: FrozenSet[OrderStatus]
    target: Optional[OrderStatus]
    policy: UpdatePolicy


TRANSITIONS = {
    OrderAction.ACCEPT: Transition(
        OrderAction.ACCEPT, frozenset({OrderStatus.PENDING}), OrderStatus.ACCEPTED, UpdatePolicy.PESSIMISTIC
    ),
    OrderAction.REJECT: Transition(
        OrderAction.REJECT, frozenset({OrderStatus.PENDING}), OrderStatus.REJECTED, UpdatePolicy.OPTIMISTIC
    ),
    OrderAction.START_PICKING: Transition(
        OrderAction.START_PICKING, frozenset({OrderStatus.ACCEPTED}), None, UpdatePolicy.LOCAL
    ),
    OrderAction.MARK_READY: Transition(
        OrderAction.MARK_READY, frozenset({OrderStatus.ACCEPTED}), OrderStatus.READY, UpdatePolicy.PESSIMISTIC
    ),
    OrderAction.ASSIGN_DRIVER: Transition(
        OrderAction.ASSIGN_DRIVER, frozenset({OrderStatus.READY}), OrderStatus.ASSIGNED, UpdatePolicy.PESSIMISTIC
    ),
    OrderAction.COMPLETE: Transition(
        OrderAction.COMPLETE, frozenset({OrderStatus.ASSIGNED}), OrderStatus.COMPLETED, UpdatePolicy.EXTERNAL
    ),
}

TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.REJECTED})

# Actions a store manager can trigger from this device
MANAGER_ACTIONS = (
    OrderAction.ACCEPT,
    OrderAction.REJECT,
    OrderAction.START_PICKING,
    OrderAction.MARK_READY,
    OrderAction.ASSIGN_DRIVER,
)


def resolve_transition(current: OrderStatus, action: OrderAction) -> Transition:
    transition = TRANSITIONS[action]
    if current not in transition.sources:
        raise InvalidTransitionError(current, action)
    return transition


def check_transition(order: Order, action: OrderAction) -> Transition:
    """Like resolve_transition, plus the picking gate in front of mark-ready."""
    transition = resolve_transition(order.status, action)
    if action == OrderAction.MARK_READY and not all_processed(order.items):
        remaining = sum(1 for item in order.items if not item.is_processed)
        raise PickingIncompleteError(order.status, action, remaining)
    return transition


def available_actions(order: Order) -> List[OrderAction]:
    """The actions a UI should offer for this order right now."""
    actions = []
    for action in MANAGER_ACTIONS:
        try:
            check_transition(order, action)
        except InvalidTransitionError:
            continue
        actions.append(action)
    return actions
