"""Application roles and the role-assignment lookup.

Roles mirror the parties of the custody chain plus the administrator who
may trigger auto-approval runs by hand.
"""

from enum import Enum
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session

from wastetrack.db.models import UserRole


class AppRole(str, Enum):
    """Roles a user can hold."""

    ADMIN = "admin"
    GENERATOR = "generator"
    TRANSPORTER = "transporter"
    RECYCLER = "recycler"
    DRIVER = "driver"


@runtime_checkable
class RoleLookup(Protocol):
    """Answers whether a user holds a role."""

    def has_role(self, user_id: UUID, role: str) -> bool: ...


class SQLAlchemyRoleLookup:
    """Role lookup backed by the ``user_roles`` table."""

    def __init__(self, db: Session):
        self.db = db

    def has_role(self, user_id: UUID, role: str) -> bool:
        assignment = self.db.query(UserRole).filter(
            UserRole.user_id == user_id,
            UserRole.role == role,
        ).first()
        return assignment is not None

    def grant(self, user_id: UUID, role: str) -> UserRole:
        """Assign a role; idempotent."""
        existing = self.db.query(UserRole).filter(
            UserRole.user_id == user_id,
            UserRole.role == role,
        ).first()
        if existing:
            return existing
        assignment = UserRole(user_id=user_id, role=role)
        self.db.add(assignment)
        self.db.flush()
        return assignment
