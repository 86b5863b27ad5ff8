"""
Reconciles the backend's heterogeneous order payloads into one canonical shape.

The store backend has shipped several payload revisions: `orderId` vs `id`,
`totalPrice` vs `total`, `orderStatus` vs `status`, items as a list, as a
JSON-encoded string, or under `ordered_items`. Every alternate field name is
resolved here and nowhere else.

Normalisation never raises on malformed data. Fields fall back to safe empty
values so display code stays total, and `normalize_order` is idempotent:
feeding it its own output yields an equal order.
"""
import json
from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional

import structlog
from pydantic import ValidationError

from .schemas import ItemStatus, Order, OrderItem, OrderStatus, RackLocation

logger = structlog.get_logger(__name__)

_ITEM_STATUSES = {status.value for status in ItemStatus}
_ORDER_STATUSES = {status.value for status in OrderStatus}

# Server statuses from older backend revisions
_ORDER_STATUS_ALIASES = {
    "delivered": OrderStatus.COMPLETED,
    "picking": OrderStatus.ACCEPTED,
    "preparing": OrderStatus.ACCEPTED,
}


def _pick(raw: Mapping, *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return default


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _optional_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value)) if value not in (None, "") else Decimal("0")
    except (InvalidOperation, ValueError):
        return Decimal("0")


def _positive_int(value: Any, default: int = 1) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


def _optional_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _is_true(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return value is True or value == 1


def _timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def normalize_order_status(value: Any) -> OrderStatus:
    key = _text(value).strip().lower()
    if key in _ORDER_STATUSES:
        return OrderStatus(key)
    return _ORDER_STATUS_ALIASES.get(key, OrderStatus.PENDING)


def _raw_items(raw: Mapping) -> list:
    value = _pick(raw, "items", "ordered_items", "orderedItems")
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            logger.warning("order_items_unparseable", order_id=_pick(raw, "orderId", "id"))
            return []
    if not isinstance(value, (list, tuple)):
        return []
    return [entry for entry in value if entry is not None]


def _normalize_rack(value: Any) -> RackLocation:
    if not isinstance(value, Mapping):
        return RackLocation()
    return RackLocation(
        location=_text(value.get("location")),
        aisle=_text(value.get("aisle")),
        description=_text(value.get("description")),
        floor=_text(value.get("floor")),
    )


def _normalize_item(raw: Mapping, order_id: str, index: int, fallback_scanned_at: datetime) -> OrderItem:
    quantity = _positive_int(raw.get("quantity"))
    raw_status = raw.get("status")
    # Case-sensitive on purpose: only canonical item statuses are trusted
    scanned = _is_true(raw.get("scanned")) or raw_status == ItemStatus.SCANNED.value

    if scanned:
        status = ItemStatus.SCANNED
        picked = _optional_int(_pick(raw, "pickedQuantity", "picked_quantity"))
        picked = quantity if picked is None else min(max(picked, 1), quantity)
        scanned_at = _timestamp(_pick(raw, "scannedAt", "scanned_at")) or fallback_scanned_at
    else:
        status = ItemStatus(raw_status) if raw_status in _ITEM_STATUSES else ItemStatus.PENDING
        picked = None
        scanned_at = None

    return OrderItem(
        id=_text(_pick(raw, "id", "itemId", default=f"{order_id}_item_{index}")),
        name=_text(_pick(raw, "productName", "name", "title", default="")),
        category=_text(_pick(raw, "category", "type", default="")),
        price=_decimal(raw.get("price")),
        quantity=quantity,
        barcode=_text(raw.get("barcode")),
        image=_text(raw.get("image")),
        rack=_normalize_rack(raw.get("rack")),
        weight=_text(raw.get("weight")),
        mrp=_text(raw.get("mrp")),
        status=status,
        picked_quantity=picked,
        scanned_at=scanned_at,
    )


def normalize_order(raw: Any) -> Optional[Order]:
    """Map any backend order payload (or an already normalised Order) to an Order.

    Returns None when there is nothing to normalise: an absent payload, a
    non-mapping value, or a record with no order id at all.
    """
    if raw is None:
        return None
    if isinstance(raw, Order):
        raw = raw.model_dump(mode="json", by_alias=True)
    if not isinstance(raw, Mapping):
        logger.warning("order_payload_not_a_mapping", payload_type=type(raw).__name__)
        return None

    order_id = _pick(raw, "orderId", "id", "order_id")
    if order_id in (None, ""):
        logger.warning("order_payload_missing_id", keys=sorted(raw.keys()))
        return None
    order_id = str(order_id)

    timestamp = _timestamp(_pick(raw, "orderDate", "timestamp", "createdAt")) or datetime.now(timezone.utc)

    items = []
    for index, raw_item in enumerate(_raw_items(raw)):
        if not isinstance(raw_item, Mapping):
            continue
        try:
            items.append(_normalize_item(raw_item, order_id, index, timestamp))
        except ValidationError as e:
            logger.warning("order_item_dropped", order_id=order_id, index=index, error=str(e))

    return Order(
        id=order_id,
        store_id=_text(_pick(raw, "storeId", "store_id", default="")),
        customer_name=_text(_pick(raw, "customerName", "customer_name", default="")),
        phone_number=_text(_pick(raw, "phoneNumber", "phone_number", default="")),
        delivery_address=_text(_pick(raw, "deliveryAddress", "delivery_address", default="")),
        special_instructions=_text(_pick(raw, "specialInstructions", "special_instructions", default="")),
        total=_decimal(_pick(raw, "totalPrice", "total")),
        status=normalize_order_status(_pick(raw, "orderStatus", "status")),
        items=items,
        timestamp=timestamp,
        driver_id=_optional_text(_pick(raw, "driverId", "driver_id")),
        driver_name=_optional_text(_pick(raw, "driverName", "driver_name")),
        driver_phone=_optional_text(_pick(raw, "driverPhone", "driver_phone")),
        estimated_time=_optional_int(raw.get("estimatedTime")),
        order_type=_text(_pick(raw, "orderType", default="grocery")),
        delivery_type=_text(_pick(raw, "deliveryType", default="")),
        payment_type=_text(_pick(raw, "paymentType", default="")),
        delivery_latitude=_text(_pick(raw, "deliveryLatitude", default="")),
        delivery_longitude=_text(_pick(raw, "deliveryLongitude", default="")),
    )


def normalize_orders(raw_orders: Iterable[Any]) -> List[Order]:
    """Normalise a batch; a corrupt entry is logged and skipped, never fatal."""
    orders = []
    for raw in raw_orders or []:
        try:
            order = normalize_order(raw)
        except ValidationError as e:
            logger.warning("order_dropped", error=str(e))
            continue
        if order is not None:
            orders.append(order)
    return orders


def unwrap_order_list(payload: Any) -> list:
    """Accepts `{orders: [...]}`, `{data: [...]}` or a bare list."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        value = _pick(payload, "orders", "data", default=[])
        return value if isinstance(value, list) else []
    return []


def unwrap_order(payload: Any) -> Any:
    """Single-order responses may arrive wrapped in `{data: {...}}`."""
    if isinstance(payload, Mapping) and isinstance(payload.get("data"), Mapping):
        return payload["data"]
    return payload
