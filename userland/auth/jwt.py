"""
JWT Authentication Utilities

Access tokens for API requests.

Note: Uses module-level state initialized once at server startup.
The secret is set once and never modified; re-initializing with the same
secret is a no-op so several app instances can share a process (tests).
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

_SECRET_KEY: Optional[str] = None
_ALGORITHM = "HS256"

_ACCESS_TOKEN_EXPIRY = timedelta(days=7)


def init_jwt(secret: str) -> None:
    """
    Initialize JWT module with secret key.

    Args:
        secret: JWT signing secret (should be cryptographically secure)

    Raises:
        ValueError: If secret is empty or differs from the one already set
    """
    global _SECRET_KEY

    if not secret or not secret.strip():
        raise ValueError("JWT secret cannot be empty")

    if _SECRET_KEY is not None and _SECRET_KEY != secret:
        raise ValueError("JWT module already initialized with a different secret")

    _SECRET_KEY = secret


def _get_secret() -> str:
    if _SECRET_KEY is None:
        raise ValueError("JWT module not initialized. Call init_jwt() first.")
    return _SECRET_KEY


def generate_access_token(user_id: str) -> str:
    """Generate access token for API requests."""
    payload = {
        "user_id": user_id,
        "type": "access",
        "exp": datetime.now(timezone.utc) + _ACCESS_TOKEN_EXPIRY,
    }
    return jwt.encode(payload, _get_secret(), algorithm=_ALGORITHM)


def verify_token(token: str, expected_type: Optional[str] = None) -> Optional[dict]:
    """Verify JWT token and return payload, or None if invalid/expired."""
    try:
        payload = jwt.decode(token, _get_secret(), algorithms=[_ALGORITHM])
    except JWTError:
        return None

    if expected_type and payload.get("type") != expected_type:
        return None
    return payload
