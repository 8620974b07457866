from typing import Callable, Generator, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from wastetrack.core.config import Settings, get_settings
from wastetrack.core.lifecycle import AuditSink, ShipmentLifecycleService
from wastetrack.core.rbac import RoleLookup, SQLAlchemyRoleLookup
from wastetrack.core.security import decode_token
from wastetrack.db.session import SessionLocal
from wastetrack.services.audit import build_audit_sink

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> Callable[[], Session]:
    """Factory for sessions owned by audit sinks."""
    return SessionLocal


def get_audit_sink(
    settings: Settings = Depends(get_settings),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> AuditSink:
    return build_audit_sink(settings, session_factory)


def get_lifecycle_service(
    db: Session = Depends(get_db),
    audit_sink: AuditSink = Depends(get_audit_sink),
    settings: Settings = Depends(get_settings),
) -> ShipmentLifecycleService:
    return ShipmentLifecycleService(
        db,
        audit_sink=audit_sink,
        max_clock_skew=settings.max_clock_skew,
    )


def get_role_lookup(db: Session = Depends(get_db)) -> RoleLookup:
    return SQLAlchemyRoleLookup(db)


def get_current_user_id(
    token: Optional[str] = Depends(oauth2_scheme),
    settings: Settings = Depends(get_settings),
) -> UUID:
    """Get the authenticated user id from the session token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        raise credentials_exception

    user_id = decode_token(token, settings)
    if user_id is None:
        raise credentials_exception
    return user_id
