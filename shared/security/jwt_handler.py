from datetime import datetime, timezone
from typing import Optional
from jose import JWTError, jwt


def read_token_claims(token: str) -> Optional[dict]:
    """Returns the unverified claims of a JWT, or None if the token is not a JWT.

    The store backend signs the token; this device only inspects it to decide
    whether a stored session is still worth reusing.
    """
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        return None


def is_token_expired(token: str, now: datetime = None) -> bool:
    """Missing tokens are expired; opaque (non-JWT) tokens are assumed valid."""
    if not token:
        return True
    claims = read_token_claims(token)
    if claims is None:
        return False
    exp = claims.get("exp")
    if exp is None:
        return False
    now = now or datetime.now(timezone.utc)
    try:
        return float(exp) <= now.timestamp()
    except (TypeError, ValueError):
        return True
