from prometheus_client import Counter, Histogram, Gauge

# Order lifecycle
storeops_order_transitions_total = Counter(
    "storeops_order_transitions_total",
    "Order status transitions requested by this device",
    ["action", "outcome"] # outcome: 'success', 'failed', 'no_drivers'
)

# Sync channels
storeops_sync_cycles_total = Counter(
    "storeops_sync_cycles_total",
    "Order list synchronisation cycles",
    ["channel", "outcome"] # channel: 'poll', 'manual', 'reconcile', 'push_new', 'push_updated'
)

storeops_sync_duration_seconds = Histogram(
    "storeops_sync_duration_seconds",
    "Fetch-normalise-replace cycle duration in seconds"
)

storeops_token_refresh_total = Counter(
    "storeops_token_refresh_total",
    "Access token refresh attempts",
    ["outcome"]
)

storeops_item_scans_total = Counter(
    "storeops_item_scans_total",
    "Item scan confirmations",
    ["outcome"] # 'persisted', 'queued', 'replayed', 'dropped'
)

storeops_orders_tracked = Gauge(
    "storeops_orders_tracked",
    "Number of orders currently held in the local order list"
)
