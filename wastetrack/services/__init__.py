"""Services for WasteTrack."""

from wastetrack.services.audit import (
    CompositeAuditSink,
    DatabaseAuditSink,
    LoggingAuditSink,
    WebhookAuditSink,
    build_audit_sink,
)
from wastetrack.services.notifications import NotificationAuditSink
from wastetrack.services.auto_approval import build_engine, run_auto_approval

__all__ = [
    "CompositeAuditSink",
    "DatabaseAuditSink",
    "LoggingAuditSink",
    "WebhookAuditSink",
    "build_audit_sink",
    "NotificationAuditSink",
    "build_engine",
    "run_auto_approval",
]
