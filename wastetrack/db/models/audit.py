"""Audit log model for WasteTrack.

Rows are append-only: nothing in the application updates or deletes them.
Every shipment transition, human or automatic, lands here through the
database audit sink.
"""

import uuid
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column, DateTime, String, Uuid

from wastetrack.common.clock import utcnow
from wastetrack.db.base import Base


class AuditSeverity(str, Enum):
    """Severity levels for audit log entries."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditLog(Base):
    """Immutable audit log entry."""
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Actor information (system sentinel for automatic transitions)
    user_id = Column(Uuid, nullable=True, index=True)
    trigger = Column(String(10), nullable=False, default="human", index=True)

    # Action details
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(100), nullable=False, index=True)
    resource_id = Column(Uuid, nullable=True, index=True)

    # Change tracking
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    details = Column(JSON, nullable=True)

    severity = Column(String(20), nullable=False, default="info", index=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} on {self.resource_type} by {self.user_id}>"

    @classmethod
    def create_entry(
        cls,
        action: str,
        resource_type: str,
        *,
        user_id: Optional[uuid.UUID] = None,
        trigger: str = "human",
        resource_id: Optional[uuid.UUID] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: AuditSeverity = AuditSeverity.INFO,
    ) -> "AuditLog":
        """
        Factory method to create a new audit log entry.

        Args:
            action: Action performed (e.g., 'shipment.transition')
            resource_type: Type of resource (e.g., 'shipment')
            user_id: Acting user, or the system sentinel
            trigger: 'human' or 'system'
            resource_id: ID of affected resource
            old_values: Previous values
            new_values: New values
            details: Additional context
            severity: Log severity level
        """
        return cls(
            action=action,
            resource_type=resource_type,
            user_id=user_id,
            trigger=trigger,
            resource_id=resource_id,
            old_values=old_values,
            new_values=new_values,
            details=details,
            severity=severity.value if isinstance(severity, AuditSeverity) else severity,
        )
