"""Celery workers for WasteTrack."""

from wastetrack.workers.lifecycle_tasks import (
    celery_app,
    auto_approve_expired_shipments,
)

__all__ = [
    "celery_app",
    "auto_approve_expired_shipments",
]
