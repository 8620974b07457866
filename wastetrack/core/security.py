from datetime import timedelta
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt

from wastetrack.common.clock import utcnow
from wastetrack.core.config import Settings, get_settings


def create_access_token(
    user_id: UUID,
    settings: Optional[Settings] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a signed session token for a user."""
    settings = settings or get_settings()
    expire = utcnow() + (expires_delta or timedelta(minutes=30))
    to_encode = {
        "sub": str(user_id),
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str, settings: Optional[Settings] = None) -> Optional[UUID]:
    """Decode and validate a session token. Returns user_id if valid."""
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        user_id: str = payload.get("sub")
        if user_id is None or payload.get("type") != "access":
            return None
        return UUID(user_id)
    except (JWTError, ValueError):
        return None
