from typing import Callable, Optional, Protocol, Tuple

from services.order_service.schemas import Order, OrderItem, RackLocation
from services.order_service.exceptions import ItemNotFoundError, OrderNotFoundError
from services.order_service.state_machine import OrderAction, available_actions

from .barcode import (
    BarcodeConfirmation,
    BarcodeScanner,
    ConfirmationState,
    QuantitySelector,
    ScanOutcome,
    ScanRequest,
)
from .state_machine import picking_progress


class ScanPrompt(Protocol):
    async def retry_or_cancel(self, confirmation: BarcodeConfirmation, outcome: ScanOutcome) -> bool:
        """True re-arms the scanner, False abandons the scan."""

    async def choose_quantity(self, selector: QuantitySelector) -> Optional[int]:
        """The operator's picked units, or None to abandon the scan."""


class PickingSession:
    """Picking view over one accepted order.

    `can_mark_ready` is recomputed on every store dispatch, so it flips as soon
    as the last item is scanned or marked unavailable, and back if a refresh
    brings in unprocessed items.
    """

    def __init__(self, engine, order_id: str, on_ready_change: Callable[[bool], None] = None):
        self.engine = engine
        self.order_id = str(order_id)
        self.on_ready_change = on_ready_change
        self._ready = self._compute_ready()
        self._unsubscribe = engine.store.subscribe(self._on_store_change)

    @property
    def order(self) -> Optional[Order]:
        return self.engine.store.get_order(self.order_id)

    @property
    def items(self) -> Tuple[OrderItem, ...]:
        order = self.order
        return tuple(order.items) if order else ()

    @property
    def can_mark_ready(self) -> bool:
        return self._ready

    @property
    def progress(self) -> Tuple[int, int]:
        return picking_progress(self.items)

    def _compute_ready(self) -> bool:
        order = self.order
        return order is not None and OrderAction.MARK_READY in available_actions(order)

    def _on_store_change(self, state, action):
        ready = self._compute_ready()
        if ready != self._ready:
            self._ready = ready
            if self.on_ready_change:
                self.on_ready_change(ready)

    def scan_request(self, item_id) -> ScanRequest:
        order = self.order
        if order is None:
            raise OrderNotFoundError(self.order_id)
        item = order.find_item(str(item_id))
        if item is None:
            raise ItemNotFoundError(self.order_id, item_id)
        return ScanRequest(expected_barcode=item.barcode, item_name=item.name, required_quantity=item.quantity)

    def locate(self, item_id) -> RackLocation:
        return self.engine.locate_item(self.order_id, item_id)

    def mark_unavailable(self, item_id) -> OrderItem:
        return self.engine.mark_item_unavailable(self.order_id, item_id)

    async def scan_item(self, item_id, scanner: BarcodeScanner, prompt: ScanPrompt) -> Optional[OrderItem]:
        """Drive one scan exchange; returns the scanned item, or None if abandoned."""
        request = self.scan_request(item_id)
        confirmation = BarcodeConfirmation(request)

        while confirmation.state == ConfirmationState.SCANNING:
            result = await scanner.scan(request)
            if result is None:
                confirmation.cancel()
                break
            outcome = confirmation.submit(result)
            if outcome == ScanOutcome.MATCH:
                break
            if await prompt.retry_or_cancel(confirmation, outcome):
                confirmation.retry()
            else:
                confirmation.cancel()

        if confirmation.state == ConfirmationState.CONFIRMING_QUANTITY:
            chosen = await prompt.choose_quantity(confirmation.quantity)
            if chosen is None:
                confirmation.cancel()
            else:
                confirmation.confirm_quantity(chosen)

        if confirmation.state != ConfirmationState.CONFIRMED:
            return None

        await self.engine.scan_barcode(
            self.order_id, item_id, confirmation.scanned_value, confirmation.confirmed_quantity
        )
        return self.engine.store.get_item(self.order_id, item_id)

    async def mark_ready(self):
        return await self.engine.mark_order_ready(self.order_id)

    def close(self):
        self._unsubscribe()
