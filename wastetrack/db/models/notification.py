"""In-app notifications for shipment parties."""

import uuid
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, Uuid

from wastetrack.common.clock import utcnow
from wastetrack.db.base import Base


class NotificationEventType(str, Enum):
    """Events that can trigger notifications."""
    STAGE_AUTO_APPROVED = "stage_auto_approved"
    SHIPMENT_COMPLETED = "shipment_completed"


class Notification(Base):
    """
    A message addressed to one party company of a shipment.

    Created by the notification audit sink; read state is owned by the UI.
    """
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    shipment_id = Column(Uuid, ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_company_id = Column(Uuid, nullable=False, index=True)

    event_type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False)

    created_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<Notification {self.event_type} -> {self.recipient_company_id}>"
