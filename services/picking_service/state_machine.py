from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Tuple

from services.order_service.exceptions import InvalidTransitionError
from services.order_service.schemas import ItemStatus, OrderItem


class ItemAction(str, Enum):
    LOCATE = "locate"
    SCAN = "scan"
    MARK_UNAVAILABLE = "mark_unavailable"


_OPEN = frozenset({ItemStatus.PENDING, ItemStatus.LOCATED})

ITEM_TRANSITIONS = {
    ItemAction.LOCATE: (frozenset({ItemStatus.PENDING}), ItemStatus.LOCATED),
    ItemAction.SCAN: (_OPEN, ItemStatus.SCANNED),
    ItemAction.MARK_UNAVAILABLE: (_OPEN, ItemStatus.UNAVAILABLE),
}


def resolve_item_transition(current: ItemStatus, action: ItemAction) -> ItemStatus:
    sources, target = ITEM_TRANSITIONS[action]
    if current not in sources:
        raise InvalidTransitionError(current, action)
    return target


def _with_status(item: OrderItem, status: ItemStatus, picked_quantity=None, scanned_at=None) -> OrderItem:
    # Re-validate so the scan-field coupling holds on every produced item
    data = item.model_dump()
    data.update(status=status, picked_quantity=picked_quantity, scanned_at=scanned_at)
    return OrderItem.model_validate(data)


def locate(item: OrderItem) -> OrderItem:
    return _with_status(item, resolve_item_transition(item.status, ItemAction.LOCATE))


def scan(item: OrderItem, picked_quantity: int, scanned_at: datetime = None) -> OrderItem:
    target = resolve_item_transition(item.status, ItemAction.SCAN)
    if not 1 <= picked_quantity <= item.quantity:
        raise ValueError(f"picked quantity must be between 1 and {item.quantity}, got {picked_quantity}")
    return _with_status(item, target, picked_quantity, scanned_at or datetime.now(timezone.utc))


def mark_unavailable(item: OrderItem) -> OrderItem:
    return _with_status(item, resolve_item_transition(item.status, ItemAction.MARK_UNAVAILABLE))


def all_processed(items: Iterable[OrderItem]) -> bool:
    """True only for a non-empty item list where every item is scanned or unavailable."""
    items = list(items)
    return len(items) > 0 and all(item.is_processed for item in items)


def picking_progress(items: Iterable[OrderItem]) -> Tuple[int, int]:
    items = list(items)
    return sum(1 for item in items if item.is_processed), len(items)
