"""
Shared secret presented by the push relay when it forwards "new order" /
"order updated" deliveries to this agent's webhook.

Uses a safe default with a loud warning so local development works, while a
production misconfiguration is still clearly surfaced.
"""
import os
import secrets
import warnings

_RELAY_KEY: str = os.getenv("NOTIFICATION_RELAY_KEY", "")

if not _RELAY_KEY:
    warnings.warn(
        "NOTIFICATION_RELAY_KEY is not set. Using an insecure default. "
        "Set this env var in production!",
        stacklevel=2,
    )
    _RELAY_KEY = "insecure-default-change-me"

NOTIFICATION_RELAY_KEY: str = _RELAY_KEY


def verify_api_key(provided_key: str, expected_key: str = None) -> bool:
    """Verify a relay key using constant-time comparison to prevent timing attacks."""
    if not provided_key:
        return False
    expected = NOTIFICATION_RELAY_KEY if expected_key is None else expected_key
    return secrets.compare_digest(str(provided_key), str(expected))
