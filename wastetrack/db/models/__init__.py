"""Database models for WasteTrack."""

from wastetrack.db.models.shipment import Shipment, ShipmentStage
from wastetrack.db.models.audit import AuditLog, AuditSeverity
from wastetrack.db.models.role import UserRole
from wastetrack.db.models.notification import Notification, NotificationEventType

__all__ = [
    "Shipment",
    "ShipmentStage",
    "AuditLog",
    "AuditSeverity",
    "UserRole",
    "Notification",
    "NotificationEventType",
]
