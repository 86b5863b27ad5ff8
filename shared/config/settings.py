import os
from dotenv import load_dotenv

load_dotenv()

API_BASE_URL = os.getenv("STORE_OPS_API_BASE_URL", "http://localhost:8080/api").rstrip("/")

# Foreground sync cadence; the store dashboard expects ~5s freshness.
POLL_INTERVAL_SECONDS = float(os.getenv("STORE_OPS_POLL_INTERVAL_SECONDS", "5"))

REQUEST_TIMEOUT_SECONDS = float(os.getenv("STORE_OPS_REQUEST_TIMEOUT_SECONDS", "10"))

# Headless login used only when no stored session is still valid
STORE_OPS_USERNAME = os.getenv("STORE_OPS_USERNAME")
STORE_OPS_PASSWORD = os.getenv("STORE_OPS_PASSWORD")

DEVICE_PLATFORM = os.getenv("STORE_OPS_DEVICE_PLATFORM", "store-agent")

# Replays of a queued item scan before it is dropped from the outbox
SCAN_MAX_ATTEMPTS = int(os.getenv("STORE_OPS_SCAN_MAX_ATTEMPTS", "10"))
