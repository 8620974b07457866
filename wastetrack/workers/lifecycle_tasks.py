"""Celery tasks for the shipment lifecycle.

Beat invokes ``auto_approve_expired_shipments`` every
``auto_approval_interval_minutes``. Each invocation is an independent unit
of work; overlapping runs are safe because transitions are idempotent.
"""

import logging
from typing import Any, Dict

from celery import Celery

from wastetrack.common.logger import configure_logging
from wastetrack.core.config import get_settings
from wastetrack.db.session import SessionLocal
from wastetrack.services.audit import build_audit_sink
from wastetrack.services.auto_approval import run_auto_approval

logger = logging.getLogger(__name__)
settings = get_settings()

configure_logging(settings)

celery_app = Celery(
    'wastetrack',
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_routes={
        'wastetrack.workers.lifecycle_tasks.auto_approve_expired_shipments': {'queue': 'lifecycle'},
    },
    task_default_queue='default',
    beat_schedule={
        'auto-approve-expired-shipments': {
            'task': 'wastetrack.workers.lifecycle_tasks.auto_approve_expired_shipments',
            'schedule': settings.auto_approval_interval_minutes * 60.0,
        },
    },
)


@celery_app.task(name='wastetrack.workers.lifecycle_tasks.auto_approve_expired_shipments')
def auto_approve_expired_shipments() -> Dict[str, Any]:
    """
    Periodic task: advance shipments that overstayed their stage.

    Authenticates with the pre-shared system credential. Failures that stop
    the whole run are logged and re-raised so Celery records them; the next
    scheduled run picks up the remaining shipments.
    """
    db = SessionLocal()
    try:
        result = run_auto_approval(
            db,
            settings.system_secret,
            settings,
            audit_sink=build_audit_sink(settings, SessionLocal),
        )
        logger.info(
            "Scheduled auto-approval: %d advanced, %d failed",
            result.advanced,
            result.failed,
        )
        return result.to_dict()

    except Exception:
        logger.exception("Scheduled auto-approval run failed")
        raise

    finally:
        db.close()
