"""
Contract between item picking and the external barcode scanner.

The picker supplies what it expects (barcode, display name, required units);
the scanner hands back one `(symbology, value)` reading at a time. A reading
of an unsupported symbology is rejected with a retry prompt and is never
reported as a wrong-item mismatch.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from services.order_service.exceptions import InvalidTransitionError

# 1D retail symbologies accepted as product scans (QR and friends are not)
SUPPORTED_SYMBOLOGIES = frozenset({"ean13", "ean8", "upc_a", "upc_e", "code39", "code128"})


def normalize_symbology(symbology) -> str:
    return str(symbology).strip().lower()


class ScanOutcome(str, Enum):
    MATCH = "match"
    MISMATCH = "mismatch"
    UNSUPPORTED_SYMBOLOGY = "unsupported_symbology"


class ConfirmationState(str, Enum):
    SCANNING = "scanning"
    MISMATCH = "mismatch"
    UNSUPPORTED_SYMBOLOGY = "unsupported_symbology"
    CONFIRMING_QUANTITY = "confirming_quantity"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ScanRequest:
    expected_barcode: str
    item_name: str
    required_quantity: int = 1

    def __post_init__(self):
        if self.required_quantity < 1:
            raise ValueError("required_quantity must be at least 1")


@dataclass(frozen=True)
class ScanResult:
    symbology: str
    value: str


class BarcodeScanner(Protocol):
    async def scan(self, request: ScanRequest) -> Optional[ScanResult]:
        """One reading, or None when the operator closes the scanner."""


def evaluate_scan(request: ScanRequest, result: ScanResult) -> ScanOutcome:
    if normalize_symbology(result.symbology) not in SUPPORTED_SYMBOLOGIES:
        return ScanOutcome.UNSUPPORTED_SYMBOLOGY
    # Exact string equality: no trimming, no check-digit tolerance
    if result.value == request.expected_barcode:
        return ScanOutcome.MATCH
    return ScanOutcome.MISMATCH


class QuantitySelector:
    """Stepper for picked units; always within [1, maximum]."""

    def __init__(self, maximum: int, initial: int = 1):
        if maximum < 1:
            raise ValueError("maximum must be at least 1")
        self.maximum = maximum
        self._value = 1
        self.set(initial)

    @property
    def value(self) -> int:
        return self._value

    def set(self, value: int) -> int:
        self._value = min(max(int(value), 1), self.maximum)
        return self._value

    def increase(self) -> int:
        return self.set(self._value + 1)

    def decrease(self) -> int:
        return self.set(self._value - 1)


class BarcodeConfirmation:
    """One scan-and-confirm exchange for a single order item."""

    def __init__(self, request: ScanRequest):
        self.request = request
        self.state = ConfirmationState.SCANNING
        self.quantity: Optional[QuantitySelector] = None
        self.scanned_value: Optional[str] = None
        self.confirmed_quantity: Optional[int] = None

    def _require(self, action: str, *states: ConfirmationState):
        if self.state not in states:
            raise InvalidTransitionError(self.state, action)

    def submit(self, result: ScanResult) -> ScanOutcome:
        self._require("submit", ConfirmationState.SCANNING)
        outcome = evaluate_scan(self.request, result)
        if outcome == ScanOutcome.UNSUPPORTED_SYMBOLOGY:
            self.state = ConfirmationState.UNSUPPORTED_SYMBOLOGY
        elif outcome == ScanOutcome.MISMATCH:
            self.state = ConfirmationState.MISMATCH
        else:
            self.scanned_value = result.value
            if self.request.required_quantity > 1:
                self.quantity = QuantitySelector(self.request.required_quantity)
                self.state = ConfirmationState.CONFIRMING_QUANTITY
            else:
                self.confirmed_quantity = 1
                self.state = ConfirmationState.CONFIRMED
        return outcome

    def retry(self):
        self._require("retry", ConfirmationState.MISMATCH, ConfirmationState.UNSUPPORTED_SYMBOLOGY)
        self.state = ConfirmationState.SCANNING

    def cancel(self):
        self._require(
            "cancel",
            ConfirmationState.SCANNING,
            ConfirmationState.MISMATCH,
            ConfirmationState.UNSUPPORTED_SYMBOLOGY,
            ConfirmationState.CONFIRMING_QUANTITY,
        )
        self.state = ConfirmationState.CANCELLED

    def confirm_quantity(self, value: int = None) -> int:
        self._require("confirm_quantity", ConfirmationState.CONFIRMING_QUANTITY)
        if value is not None:
            self.quantity.set(value)
        self.confirmed_quantity = self.quantity.value
        self.state = ConfirmationState.CONFIRMED
        return self.confirmed_quantity
