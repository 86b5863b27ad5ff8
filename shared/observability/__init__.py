from .setup import setup_observability, configure_logging, bind_store_context
from .metrics import (
    storeops_order_transitions_total,
    storeops_sync_cycles_total,
    storeops_sync_duration_seconds,
    storeops_token_refresh_total,
    storeops_item_scans_total,
    storeops_orders_tracked
)
