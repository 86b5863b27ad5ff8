from .jwt_handler import read_token_claims, is_token_expired
from .api_key import verify_api_key
from .dependencies import verify_relay_key

__all__ = [
    "read_token_claims",
    "is_token_expired",
    "verify_api_key",
    "verify_relay_key",
]
