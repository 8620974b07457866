"""Authorized entry point for auto-approval runs.

Shared by the HTTP trigger and the Celery beat task:
Authorization Gate -> Auto-Approval Engine -> lifecycle service.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from wastetrack.core.config import Settings
from wastetrack.core.lifecycle import AuditSink, AutoApprovalEngine, AutoApprovalResult, ShipmentLifecycleService
from wastetrack.core.rbac import AuthorizationGate, RoleLookup, SQLAlchemyRoleLookup

logger = logging.getLogger(__name__)


def build_engine(
    db: Session,
    settings: Settings,
    audit_sink: Optional[AuditSink] = None,
) -> AutoApprovalEngine:
    service = ShipmentLifecycleService(db, audit_sink=audit_sink, max_clock_skew=settings.max_clock_skew)
    return AutoApprovalEngine(
        service,
        settings.dwell_thresholds(),
        system_actor_id=settings.system_actor_id,
        batch_limit=settings.auto_approval_batch_limit,
        deadline_seconds=settings.auto_approval_deadline_seconds,
    )


def run_auto_approval(
    db: Session,
    credential: Optional[str],
    settings: Settings,
    *,
    audit_sink: Optional[AuditSink] = None,
    role_lookup: Optional[RoleLookup] = None,
    now: Optional[datetime] = None,
) -> AutoApprovalResult:
    """
    Authorize a caller and run one auto-approval pass.

    Authorization happens before any shipment is read; a denied caller
    raises ``UnauthorizedError`` or ``ForbiddenError`` and nothing runs.

    Raises:
        UnauthorizedError: Missing or invalid credential
        ForbiddenError: Authenticated user without the admin role
        StorageError: Overdue shipments could not be selected
    """
    gate = AuthorizationGate(settings, role_lookup or SQLAlchemyRoleLookup(db))
    decision = gate.authorize(credential)
    logger.info(
        "Starting auto-approval process (authorized %s caller %s)",
        decision.principal.value,
        decision.actor_id,
    )
    return build_engine(db, settings, audit_sink).run(now)
