from __future__ import annotations

import unittest
from datetime import datetime, timezone

from services.order_service.exceptions import InvalidTransitionError
from services.order_service.schemas import ItemStatus, OrderItem
from services.picking_service import state_machine as picking
from services.picking_service.barcode import (
    BarcodeConfirmation,
    ConfirmationState,
    QuantitySelector,
    ScanOutcome,
    ScanRequest,
    ScanResult,
    evaluate_scan,
)


def _item(status: ItemStatus = ItemStatus.PENDING, quantity: int = 2, **extra) -> OrderItem:
    return OrderItem(id="O1_item_0", name="Milk", barcode="123456789012", quantity=quantity, status=status, **extra)


class ItemTransitionTests(unittest.TestCase):
    def test_locate_then_scan(self) -> None:
        located = picking.locate(_item())
        self.assertEqual(located.status, ItemStatus.LOCATED)

        when = datetime(2025, 8, 21, 12, 0, tzinfo=timezone.utc)
        scanned = picking.scan(located, 2, scanned_at=when)
        self.assertEqual(scanned.status, ItemStatus.SCANNED)
        self.assertEqual(scanned.picked_quantity, 2)
        self.assertEqual(scanned.scanned_at, when)
        self.assertTrue(scanned.is_processed)

    def test_scan_directly_from_pending_stamps_time(self) -> None:
        scanned = picking.scan(_item(), 1)
        self.assertIsNotNone(scanned.scanned_at)
        self.assertEqual(scanned.picked_quantity, 1)

    def test_scan_quantity_out_of_range(self) -> None:
        with self.assertRaises(ValueError):
            picking.scan(_item(), 0)
        with self.assertRaises(ValueError):
            picking.scan(_item(), 3)

    def test_unavailable_from_pending_or_located(self) -> None:
        self.assertEqual(picking.mark_unavailable(_item()).status, ItemStatus.UNAVAILABLE)
        located = _item(ItemStatus.LOCATED)
        self.assertEqual(picking.mark_unavailable(located).status, ItemStatus.UNAVAILABLE)

    def test_processed_items_are_final(self) -> None:
        unavailable = _item(ItemStatus.UNAVAILABLE)
        for action in (picking.locate, picking.mark_unavailable):
            with self.assertRaises(InvalidTransitionError):
                action(unavailable)
        with self.assertRaises(InvalidTransitionError):
            picking.scan(unavailable, 1)

    def test_locate_only_from_pending(self) -> None:
        with self.assertRaises(InvalidTransitionError):
            picking.locate(_item(ItemStatus.LOCATED))

    def test_scan_fields_are_coupled_to_status(self) -> None:
        with self.assertRaises(ValueError):
            _item(ItemStatus.SCANNED)
        with self.assertRaises(ValueError):
            _item(ItemStatus.PENDING, picked_quantity=1)
        with self.assertRaises(ValueError):
            _item(ItemStatus.SCANNED, picked_quantity=5, scanned_at=datetime.now(timezone.utc))

    def test_all_processed(self) -> None:
        self.assertFalse(picking.all_processed([]))
        self.assertFalse(picking.all_processed([_item(), _item(ItemStatus.UNAVAILABLE)]))
        self.assertFalse(picking.all_processed([_item(ItemStatus.LOCATED)]))
        done = [picking.scan(_item(), 2), _item(ItemStatus.UNAVAILABLE)]
        self.assertTrue(picking.all_processed(done))
        self.assertEqual(picking.picking_progress(done + [_item()]), (2, 3))


class EvaluateScanTests(unittest.TestCase):
    request = ScanRequest(expected_barcode="123456789012", item_name="Milk", required_quantity=2)

    def test_exact_match(self) -> None:
        self.assertEqual(evaluate_scan(self.request, ScanResult("ean13", "123456789012")), ScanOutcome.MATCH)

    def test_no_trimming_or_prefix_tolerance(self) -> None:
        for value in (" 123456789012", "0123456789012", "12345678901"):
            with self.subTest(value=value):
                self.assertEqual(evaluate_scan(self.request, ScanResult("ean13", value)), ScanOutcome.MISMATCH)

    def test_symbology_names_are_case_insensitive(self) -> None:
        self.assertEqual(evaluate_scan(self.request, ScanResult("UPC_A", "123456789012")), ScanOutcome.MATCH)

    def test_unsupported_symbology_is_not_a_mismatch(self) -> None:
        outcome = evaluate_scan(self.request, ScanResult("qr", "123456789012"))
        self.assertEqual(outcome, ScanOutcome.UNSUPPORTED_SYMBOLOGY)

    def test_request_needs_positive_quantity(self) -> None:
        with self.assertRaises(ValueError):
            ScanRequest(expected_barcode="1", item_name="x", required_quantity=0)


class QuantitySelectorTests(unittest.TestCase):
    def test_stays_within_bounds(self) -> None:
        selector = QuantitySelector(3)
        self.assertEqual(selector.value, 1)
        self.assertEqual(selector.decrease(), 1)
        self.assertEqual(selector.increase(), 2)
        self.assertEqual(selector.increase(), 3)
        self.assertEqual(selector.increase(), 3)
        self.assertEqual(selector.set(0), 1)
        self.assertEqual(selector.set(99), 3)

    def test_initial_value_is_clamped(self) -> None:
        self.assertEqual(QuantitySelector(2, initial=5).value, 2)


class BarcodeConfirmationTests(unittest.TestCase):
    def test_mismatch_retry_then_quantity(self) -> None:
        confirmation = BarcodeConfirmation(
            ScanRequest(expected_barcode="123456789012", item_name="Milk", required_quantity=3)
        )
        self.assertEqual(confirmation.submit(ScanResult("ean13", "999")), ScanOutcome.MISMATCH)
        self.assertEqual(confirmation.state, ConfirmationState.MISMATCH)
        confirmation.retry()
        self.assertEqual(confirmation.submit(ScanResult("ean13", "123456789012")), ScanOutcome.MATCH)
        self.assertEqual(confirmation.state, ConfirmationState.CONFIRMING_QUANTITY)
        confirmation.quantity.increase()
        self.assertEqual(confirmation.confirm_quantity(), 2)
        self.assertEqual(confirmation.state, ConfirmationState.CONFIRMED)
        self.assertEqual(confirmation.scanned_value, "123456789012")

    def test_single_unit_skips_quantity_step(self) -> None:
        confirmation = BarcodeConfirmation(ScanRequest(expected_barcode="1", item_name="Bread"))
        confirmation.submit(ScanResult("code128", "1"))
        self.assertEqual(confirmation.state, ConfirmationState.CONFIRMED)
        self.assertEqual(confirmation.confirmed_quantity, 1)

    def test_unsupported_symbology_prompts_retry(self) -> None:
        confirmation = BarcodeConfirmation(ScanRequest(expected_barcode="1", item_name="Bread"))
        confirmation.submit(ScanResult("qr", "1"))
        self.assertEqual(confirmation.state, ConfirmationState.UNSUPPORTED_SYMBOLOGY)
        confirmation.retry()
        self.assertEqual(confirmation.state, ConfirmationState.SCANNING)

    def test_cancel_and_out_of_order_calls(self) -> None:
        confirmation = BarcodeConfirmation(ScanRequest(expected_barcode="1", item_name="Bread"))
        with self.assertRaises(InvalidTransitionError):
            confirmation.retry()
        with self.assertRaises(InvalidTransitionError):
            confirmation.confirm_quantity(1)
        confirmation.cancel()
        self.assertEqual(confirmation.state, ConfirmationState.CANCELLED)
        with self.assertRaises(InvalidTransitionError):
            confirmation.submit(ScanResult("ean13", "1"))

    def test_confirmed_quantity_is_clamped(self) -> None:
        confirmation = BarcodeConfirmation(ScanRequest(expected_barcode="1", item_name="Eggs", required_quantity=4))
        confirmation.submit(ScanResult("ean8", "1"))
        self.assertEqual(confirmation.confirm_quantity(10), 4)


if __name__ == "__main__":
    unittest.main()
