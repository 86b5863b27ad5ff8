from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from .api_key import verify_api_key

# Header the push relay uses to authenticate webhook deliveries
relay_key_header = APIKeyHeader(name="X-Notification-Key", auto_error=False)

async def verify_relay_key(api_key: str = Depends(relay_key_header)) -> bool:
    """Dependency to validate deliveries coming from the push relay."""
    if not verify_api_key(api_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing X-Notification-Key header"
        )
    return True
