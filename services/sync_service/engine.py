"""
Keeps this device's order list consistent with the store backend.

Three channels feed the list and may race: the initial load/foreground poll
(full replacement), push "new order" events (single-order upsert) and push
"order updated" events (full replacement). Full replacements and push merges
are serialised behind one lock so each cycle lands as a single dispatch.

Order transitions follow the update policy of the state machine: accept,
mark-ready and assign-driver change local state only after the backend
confirms; reject changes it first and only logs a backend failure.
"""
import asyncio
from collections.abc import Mapping
from typing import Any, List, Optional, Tuple

import structlog
from pydantic import BaseModel

from shared.config.settings import POLL_INTERVAL_SECONDS, SCAN_MAX_ATTEMPTS
from shared.observability import (
    storeops_item_scans_total,
    storeops_order_transitions_total,
    storeops_sync_cycles_total,
    storeops_sync_duration_seconds,
)
from services.notification_service.schemas import NEW_ORDER_EVENT, ORDER_REFRESH_EVENTS
from services.order_service.exceptions import (
    AuthenticationExpiredError,
    ItemNotFoundError,
    NoDriversAvailableError,
    OrderNotFoundError,
    StoreOpsError,
    is_retryable,
)
from services.order_service.normalization import (
    normalize_order,
    normalize_orders,
    unwrap_order,
    unwrap_order_list,
)
from services.order_service.schemas import Order, OrderItem, OrderStatus, RackLocation
from services.order_service.state_machine import OrderAction, check_transition
from services.picking_service import state_machine as picking
from services.picking_service.barcode import ScanOutcome
from services.picking_service.session import PickingSession

from .api_client import StoreApiClient
from .models import PendingItemScan
from .poller import OrderPoller
from .repository import PendingScanRepository
from .store import ActionType, OrderStore, StoreAction

logger = structlog.get_logger(__name__)


class SyncEngine:
    def __init__(
        self,
        api: StoreApiClient,
        store_id: str,
        store: OrderStore = None,
        session_factory=None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_scan_attempts: int = SCAN_MAX_ATTEMPTS,
    ):
        self.api = api
        self.store_id = str(store_id)
        self.store = store or OrderStore()
        # Local scan outbox; None keeps failed scan persistence in memory only
        self.session_factory = session_factory
        self.max_scan_attempts = max_scan_attempts
        self.poller = OrderPoller(self._poll_tick, poll_interval)
        self._sync_lock = asyncio.Lock()

    # --- lifecycle ---

    def start(self):
        """Initial load followed by foreground polling."""
        self.poller.start()

    async def stop(self):
        await self.poller.stop()

    # --- lookups ---

    @property
    def orders(self) -> Tuple[Order, ...]:
        return self.store.orders

    def _require_order(self, order_id) -> Order:
        order = self.store.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def _require_item(self, order_id, item_id) -> Tuple[Order, OrderItem]:
        order = self._require_order(order_id)
        item = order.find_item(str(item_id))
        if item is None:
            raise ItemNotFoundError(order.id, item_id)
        return order, item

    def _require_pickable_item(self, order_id, item_id) -> Tuple[Order, OrderItem]:
        # Items can only change while their order is being picked
        order, item = self._require_item(order_id, item_id)
        check_transition(order, OrderAction.START_PICKING)
        return order, item

    # --- fetch and replace ---

    async def refresh_orders(self, status: str = None) -> List[Order]:
        """Manual reconciliation (screen focus, app foregrounded). Raises on failure."""
        return await self._refresh(status, channel="manual")

    async def _poll_tick(self):
        await self._refresh(None, channel="poll")

    async def _refresh(self, status: Optional[str], channel: str) -> List[Order]:
        async with self._sync_lock:
            await self.flush_outbox()
            self.store.dispatch(StoreAction(ActionType.SET_LOADING, True))
            try:
                with storeops_sync_duration_seconds.time():
                    payload = await self.api.fetch_orders(self.store_id, status)
                    orders = normalize_orders(unwrap_order_list(payload))
            except StoreOpsError as e:
                storeops_sync_cycles_total.labels(channel=channel, outcome="failed").inc()
                self.store.dispatch(StoreAction(ActionType.SET_ERROR, str(e)))
                logger.warning("order_sync_failed", channel=channel, error=str(e))
                raise
            self.store.dispatch(StoreAction(ActionType.SET_ORDERS, orders))
            storeops_sync_cycles_total.labels(channel=channel, outcome="success").inc()
            logger.debug("order_sync_completed", channel=channel, count=len(self.store.orders))
            return list(self.store.orders)

    async def _reconcile(self, reason: str):
        try:
            await self._refresh(None, channel="reconcile")
        except StoreOpsError as e:
            logger.warning("order_reconcile_failed", reason=reason, error=str(e))

    async def fetch_order_details(self, order_id) -> Optional[Order]:
        payload = await self.api.fetch_order(str(order_id))
        return normalize_order(unwrap_order(payload))

    # --- push channel ---

    async def handle_notification(self, event: Any) -> bool:
        """Apply one push event. Returns True if it changed what the engine holds."""
        if isinstance(event, BaseModel):
            event = event.model_dump(by_alias=True)
        if not isinstance(event, Mapping):
            return False
        event_type = event.get("type")

        if event_type == NEW_ORDER_EVENT:
            order_id = event.get("orderId") or event.get("order_id")
            if not order_id:
                logger.warning("new_order_event_without_id")
                return False
            async with self._sync_lock:
                try:
                    order = await self.fetch_order_details(order_id)
                except StoreOpsError as e:
                    storeops_sync_cycles_total.labels(channel="push_new", outcome="failed").inc()
                    logger.warning("new_order_fetch_failed", order_id=str(order_id), error=str(e))
                    return False
                if order is None:
                    return False
                self.store.dispatch(StoreAction(ActionType.ADD_ORDER, order))
            storeops_sync_cycles_total.labels(channel="push_new", outcome="success").inc()
            logger.info("new_order_received", order_id=order.id)
            return True

        if event_type in ORDER_REFRESH_EVENTS:
            try:
                await self._refresh(None, channel="push_updated")
            except StoreOpsError:
                return False
            return True

        logger.debug("notification_ignored", type=event_type)
        return False

    # --- order transitions ---

    async def _confirmed_transition(self, order_id, action: OrderAction, call):
        order = self._require_order(order_id)
        transition = check_transition(order, action)
        try:
            result = await call(order)
        except StoreOpsError as e:
            outcome = "no_drivers" if isinstance(e, NoDriversAvailableError) else "failed"
            storeops_order_transitions_total.labels(action=action.value, outcome=outcome).inc()
            logger.warning("order_transition_failed", order_id=order.id, action=action.value, error=str(e))
            raise
        self.store.dispatch(StoreAction(ActionType.UPDATE_ORDER_STATUS, (order.id, transition.target)))
        storeops_order_transitions_total.labels(action=action.value, outcome="success").inc()
        logger.info("order_transitioned", order_id=order.id, action=action.value, status=transition.target.value)
        return result

    async def accept_order(self, order_id):
        return await self._confirmed_transition(
            order_id,
            OrderAction.ACCEPT,
            lambda order: self.api.update_order_status(order.id, OrderStatus.ACCEPTED.value),
        )

    async def reject_order(self, order_id):
        order = self._require_order(order_id)
        transition = check_transition(order, OrderAction.REJECT)
        self.store.dispatch(StoreAction(ActionType.UPDATE_ORDER_STATUS, (order.id, transition.target)))
        try:
            await self.api.update_order_status(order.id, transition.target.value)
        except StoreOpsError as e:
            storeops_order_transitions_total.labels(action=OrderAction.REJECT.value, outcome="failed").inc()
            logger.warning("order_reject_not_persisted", order_id=order.id, error=str(e))
            return
        # The latest backend acknowledgement decides the local status
        self.store.dispatch(StoreAction(ActionType.UPDATE_ORDER_STATUS, (order.id, transition.target)))
        storeops_order_transitions_total.labels(action=OrderAction.REJECT.value, outcome="success").inc()
        logger.info("order_transitioned", order_id=order.id, action=OrderAction.REJECT.value, status=transition.target.value)

    def start_picking(self, order_id, on_ready_change=None) -> PickingSession:
        order = self._require_order(order_id)
        check_transition(order, OrderAction.START_PICKING)
        return PickingSession(self, order.id, on_ready_change=on_ready_change)

    async def mark_order_ready(self, order_id):
        result = await self._confirmed_transition(
            order_id,
            OrderAction.MARK_READY,
            lambda order: self.api.update_order_status(order.id, OrderStatus.READY.value),
        )
        await self._reconcile("mark_ready")
        return result

    async def assign_driver(self, order_id):
        result = await self._confirmed_transition(
            order_id,
            OrderAction.ASSIGN_DRIVER,
            lambda order: self.api.assign_driver(order.id, order.store_id or self.store_id),
        )
        await self._reconcile("assign_driver")
        return result

    # --- item picking ---

    def locate_item(self, order_id, item_id) -> RackLocation:
        order, item = self._require_pickable_item(order_id, item_id)
        updated = picking.locate(item)
        self.store.dispatch(StoreAction(ActionType.UPDATE_ITEM, (order.id, updated)))
        return updated.rack

    def mark_item_unavailable(self, order_id, item_id) -> OrderItem:
        order, item = self._require_pickable_item(order_id, item_id)
        updated = picking.mark_unavailable(item)
        self.store.dispatch(StoreAction(ActionType.UPDATE_ITEM, (order.id, updated)))
        logger.info("item_marked_unavailable", order_id=order.id, item_id=item.id)
        return updated

    async def scan_barcode(self, order_id, item_id, scanned_barcode: str, picked_quantity: int = 1) -> ScanOutcome:
        order, item = self._require_pickable_item(order_id, item_id)
        if scanned_barcode != item.barcode:
            logger.info("barcode_mismatch", order_id=order.id, item_id=item.id)
            return ScanOutcome.MISMATCH
        updated = picking.scan(item, picked_quantity)
        self.store.dispatch(StoreAction(ActionType.UPDATE_ITEM, (order.id, updated)))
        await self._persist_scan(order.id, updated)
        return ScanOutcome.MATCH

    async def _persist_scan(self, order_id: str, item: OrderItem):
        try:
            await self.api.persist_item_scan(order_id, item.barcode, item.picked_quantity, item.scanned_at, item.id)
        except StoreOpsError as e:
            if not is_retryable(e):
                storeops_item_scans_total.labels(outcome="dropped").inc()
                logger.warning("item_scan_rejected", order_id=order_id, item_id=item.id, error=str(e))
                return
            logger.warning("item_scan_not_persisted", order_id=order_id, item_id=item.id, error=str(e))
            await self._queue_scan(order_id, item)
            return
        storeops_item_scans_total.labels(outcome="persisted").inc()

    async def _queue_scan(self, order_id: str, item: OrderItem):
        if self.session_factory is None:
            return
        scan = PendingItemScan(
            order_id=order_id,
            item_id=item.id,
            barcode=item.barcode,
            picked_quantity=item.picked_quantity,
            scanned_at=item.scanned_at,
        )
        async with self.session_factory() as db:
            await PendingScanRepository.add(db, scan)
        storeops_item_scans_total.labels(outcome="queued").inc()

    async def flush_outbox(self) -> int:
        """Re-send queued scans oldest first.

        A scan the backend rejects outright (non-retryable 4xx) or that has
        used up `max_scan_attempts` is dropped and the replay moves on; any
        other failure stops the replay until the next refresh.
        """
        if self.session_factory is None:
            return 0
        replayed = 0
        async with self.session_factory() as db:
            for scan in await PendingScanRepository.list_pending(db):
                try:
                    await self.api.persist_item_scan(
                        scan.order_id, scan.barcode, scan.picked_quantity, scan.scanned_at, scan.item_id
                    )
                except AuthenticationExpiredError:
                    raise
                except StoreOpsError as e:
                    if not is_retryable(e):
                        await self._drop_scan(db, scan, "rejected", e)
                        continue
                    attempts = await PendingScanRepository.record_attempt(db, scan.id)
                    if attempts >= self.max_scan_attempts:
                        await self._drop_scan(db, scan, "max_attempts", e)
                        continue
                    logger.warning(
                        "item_scan_replay_failed",
                        order_id=scan.order_id,
                        item_id=scan.item_id,
                        attempts=attempts,
                        error=str(e),
                    )
                    break
                await PendingScanRepository.delete(db, scan.id)
                storeops_item_scans_total.labels(outcome="replayed").inc()
                replayed += 1
        return replayed

    async def _drop_scan(self, db, scan: PendingItemScan, reason: str, error: StoreOpsError):
        await PendingScanRepository.delete(db, scan.id)
        storeops_item_scans_total.labels(outcome="dropped").inc()
        logger.error(
            "item_scan_dropped",
            order_id=scan.order_id,
            item_id=scan.item_id,
            barcode=scan.barcode,
            reason=reason,
            attempts=scan.attempts,
            error=str(error),
        )

    # --- local list hygiene ---

    def add_order(self, raw) -> Optional[Order]:
        order = normalize_order(raw)
        if order is not None:
            self.store.dispatch(StoreAction(ActionType.ADD_ORDER, order))
        return order

    def remove_order(self, order_id):
        self.store.dispatch(StoreAction(ActionType.REMOVE_ORDER, str(order_id)))
