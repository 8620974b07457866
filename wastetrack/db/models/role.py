"""Role assignments consumed by the authorization gate.

User accounts live in the identity provider; only the user id to role
mapping is stored here.
"""

import uuid

from sqlalchemy import Column, DateTime, String, UniqueConstraint, Uuid

from wastetrack.common.clock import utcnow
from wastetrack.db.base import Base


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_id_role"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    role = Column(String(50), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    def __repr__(self) -> str:
        return f"<UserRole {self.user_id} {self.role}>"
