"""Auto-approval trigger endpoint.

Invoked by the scheduler with the system credential or by an administrator
with a session token. Uses its own response body rather than the
``{"detail", "code"}`` error shape so schedulers can key on ``success``.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from wastetrack.api.deps import get_audit_sink, get_db, get_role_lookup
from wastetrack.api.errors import status_code_for
from wastetrack.api.schemas import AutoApprovalResponse
from wastetrack.common.clock import utcnow
from wastetrack.core.config import Settings, get_settings
from wastetrack.core.lifecycle import AuditSink
from wastetrack.core.lifecycle.errors import AuthorizationError
from wastetrack.core.rbac import RoleLookup
from wastetrack.core.rbac.gate import extract_bearer
from wastetrack.services.auto_approval import run_auto_approval

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auto-approval"])


@router.post("/auto-approve", response_model=AutoApprovalResponse)
def trigger_auto_approval(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    role_lookup: RoleLookup = Depends(get_role_lookup),
    audit_sink: AuditSink = Depends(get_audit_sink),
):
    """Advance every shipment that has overstayed its current stage."""
    try:
        result = run_auto_approval(
            db,
            extract_bearer(authorization),
            settings,
            audit_sink=audit_sink,
            role_lookup=role_lookup,
        )
    except AuthorizationError as e:
        return JSONResponse(
            status_code=status_code_for(e),
            content={"success": False, "error": str(e)},
        )
    except Exception as e:
        logger.exception("Auto-approval run failed")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": str(e), "timestamp": utcnow().isoformat()},
        )

    message = f"Auto-approved {result.advanced} shipment(s)"
    if result.failed:
        message += f", {result.failed} failed"
    if result.partial:
        message += "; more remain for the next run"

    return AutoApprovalResponse(
        advanced=result.advanced,
        failed=result.failed,
        skipped=result.skipped,
        partial=result.partial,
        timestamp=result.completed_at or utcnow(),
        message=message,
    )
