class StoreOpsError(Exception):
    """Base class for every error raised by the store-ops core."""


class ApiError(StoreOpsError):
    """The store backend answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        self.message = message
        super().__init__(f"HTTP {status_code}: {message}" if message else f"HTTP {status_code}")


class NoDriversAvailableError(ApiError):
    """Driver dispatch failed because no driver could take the order. Not retryable."""

    PHRASE = "no drivers available"

    @classmethod
    def matches(cls, text: str) -> bool:
        return cls.PHRASE in str(text or "").lower()


class TransportError(StoreOpsError):
    """The request never produced a response (connection failure, timeout)."""


class AuthenticationExpiredError(StoreOpsError):
    """Token refresh failed; stored credentials were cleared and logout was triggered."""


class InvalidTransitionError(StoreOpsError):
    def __init__(self, current, action):
        self.current = current
        self.action = action
        super().__init__(f"Cannot {getattr(action, 'value', action)} from status '{getattr(current, 'value', current)}'")


class PickingIncompleteError(InvalidTransitionError):
    """Mark-ready requested while some items are still pending or located."""

    def __init__(self, current, action, remaining: int):
        self.remaining = remaining
        super().__init__(current, action)
        self.args = (f"{remaining} item(s) still need to be scanned or marked unavailable",)


class OrderNotFoundError(StoreOpsError):
    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class ItemNotFoundError(StoreOpsError):
    def __init__(self, order_id, item_id):
        self.order_id = order_id
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found in order {order_id}")


# Statuses worth re-sending later; any other 4xx is a permanent rejection
RETRYABLE_STATUS_CODES = frozenset({408, 429})


def is_retryable(error: Exception) -> bool:
    if isinstance(error, TransportError):
        return True
    if isinstance(error, ApiError):
        return error.status_code >= 500 or error.status_code in RETRYABLE_STATUS_CODES
    return False
