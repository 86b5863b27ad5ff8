"""
Reducer-style owner of the local order list.

The order list is the only shared mutable state in the agent. Every change
goes through `OrderStore.dispatch`, which runs the pure `orders_reducer` and
swaps in the new state in one step, so readers never observe a half-applied
refresh.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import structlog

from shared.observability import storeops_orders_tracked
from services.order_service.schemas import Order, OrderItem, OrderStatus

logger = structlog.get_logger(__name__)


class ActionType(str, Enum):
    SET_LOADING = "SET_LOADING"
    SET_ERROR = "SET_ERROR"
    ADD_ORDER = "ADD_ORDER"
    SET_ORDERS = "SET_ORDERS"
    UPDATE_ORDER_STATUS = "UPDATE_ORDER_STATUS"
    UPDATE_ITEM = "UPDATE_ITEM"
    REMOVE_ORDER = "REMOVE_ORDER"


@dataclass(frozen=True)
class StoreAction:
    type: ActionType
    payload: Any = None


@dataclass(frozen=True)
class OrdersState:
    orders: Tuple[Order, ...] = ()
    loading: bool = False
    error: Optional[str] = None


def dedupe_orders(orders: Iterable[Order]) -> List[Order]:
    """First occurrence of each order id wins; arrival order is kept."""
    seen = set()
    unique = []
    for order in orders:
        if order.id in seen:
            continue
        seen.add(order.id)
        unique.append(order)
    return unique


def _replace_order(orders, order_id: str, change: Callable[[Order], Order]) -> Tuple[Order, ...]:
    return tuple(change(order) if order.id == order_id else order for order in orders)


def orders_reducer(state: OrdersState, action: StoreAction) -> OrdersState:
    payload = action.payload

    if action.type == ActionType.SET_LOADING:
        return replace(state, loading=bool(payload))

    if action.type == ActionType.SET_ERROR:
        return replace(state, error=payload, loading=False)

    if action.type == ActionType.SET_ORDERS:
        return OrdersState(orders=tuple(dedupe_orders(payload)), loading=False, error=None)

    if action.type == ActionType.ADD_ORDER:
        # Upsert: a fresher copy replaces the old entry in place, new orders go on top
        if any(order.id == payload.id for order in state.orders):
            orders = _replace_order(state.orders, payload.id, lambda _: payload)
        else:
            orders = (payload,) + state.orders
        return replace(state, orders=orders, loading=False)

    if action.type == ActionType.UPDATE_ORDER_STATUS:
        order_id, status = payload
        orders = _replace_order(
            state.orders, order_id, lambda order: order.model_copy(update={"status": OrderStatus(status)})
        )
        return replace(state, orders=orders)

    if action.type == ActionType.UPDATE_ITEM:
        order_id, item = payload

        def patch(order: Order) -> Order:
            items = [item if existing.id == item.id else existing for existing in order.items]
            return order.model_copy(update={"items": items})

        return replace(state, orders=_replace_order(state.orders, order_id, patch))

    if action.type == ActionType.REMOVE_ORDER:
        return replace(state, orders=tuple(order for order in state.orders if order.id != payload))

    return state


Listener = Callable[[OrdersState, StoreAction], None]


class OrderStore:
    def __init__(self, initial: OrdersState = None):
        self._state = initial or OrdersState()
        self._listeners: List[Listener] = []

    @property
    def state(self) -> OrdersState:
        return self._state

    @property
    def orders(self) -> Tuple[Order, ...]:
        return self._state.orders

    def get_order(self, order_id) -> Optional[Order]:
        order_id = str(order_id)
        return next((order for order in self._state.orders if order.id == order_id), None)

    def get_item(self, order_id, item_id) -> Optional[OrderItem]:
        order = self.get_order(order_id)
        return order.find_item(str(item_id)) if order else None

    def status_counts(self) -> Dict[OrderStatus, int]:
        counts = {status: 0 for status in OrderStatus}
        for order in self._state.orders:
            counts[order.status] += 1
        return counts

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: StoreAction) -> OrdersState:
        new_state = orders_reducer(self._state, action)
        if new_state is self._state:
            return new_state
        self._state = new_state
        storeops_orders_tracked.set(len(new_state.orders))
        for listener in list(self._listeners):
            try:
                listener(new_state, action)
            except Exception:
                # A broken subscriber must not block the others
                logger.exception("store_listener_failed", action=action.type.value)
        return new_state
