"""Auto-approval of shipments stuck at a stage past its dwell threshold.

A run selects overdue shipments (most overdue first) and asks the lifecycle
service to move each one to its next status as the system sentinel. The
transition is keyed on the status observed at selection time, so a shipment
already advanced by a racing run or a human becomes an idempotent no-op
instead of a second advance.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from jinja2 import Template
from sqlalchemy.exc import SQLAlchemyError

from wastetrack.common.clock import to_naive_utc, utcnow

from .errors import LifecycleError, StorageError
from .ledger import DwellCandidate
from .service import ShipmentLifecycleService
from .states import ShipmentStatus, TriggerKind, next_status

logger = logging.getLogger(__name__)


AUTO_APPROVAL_NOTE = Template(
    "Auto-approved: no action recorded for {{ hours }}h at {{ status }} "
    "(limit {{ limit_hours }}h); moved to {{ target }} by the system."
)


def _hours(delta: timedelta) -> str:
    return f"{delta.total_seconds() / 3600:.1f}".rstrip("0").rstrip(".")


def render_auto_approval_note(candidate: DwellCandidate, threshold: timedelta, target: ShipmentStatus) -> str:
    return AUTO_APPROVAL_NOTE.render(
        hours=_hours(candidate.elapsed),
        status=candidate.status.value,
        limit_hours=_hours(threshold),
        target=target.value,
    )


@dataclass
class AutoApprovalResult:
    """Summary of one run; partial failure is reported, never raised."""

    advanced: int = 0
    skipped: int = 0
    failed: int = 0
    candidates: int = 0
    partial: bool = False
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    errors: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "advanced": self.advanced,
            "skipped": self.skipped,
            "failed": self.failed,
            "candidates": self.candidates,
            "partial": self.partial,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "errors": list(self.errors),
        }


class AutoApprovalEngine:
    """
    Force-advances shipments whose current stage has outlived its threshold.

    Handles:
    - Deterministic candidate selection (longest dwell first)
    - Per-shipment failure isolation
    - An overall deadline and batch limit; unfinished work waits for the next run
    """

    def __init__(
        self,
        service: ShipmentLifecycleService,
        thresholds: Dict[ShipmentStatus, timedelta],
        *,
        system_actor_id: UUID,
        batch_limit: Optional[int] = None,
        deadline_seconds: Optional[float] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the engine.

        Args:
            service: Lifecycle service that performs the transitions
            thresholds: Maximum dwell per status; statuses absent never auto-advance
            system_actor_id: Sentinel actor recorded on automatic transitions
            batch_limit: Maximum candidates examined per run
            deadline_seconds: Wall-clock budget for one run
            monotonic: Clock used for the deadline
        """
        self.service = service
        self.thresholds = {
            status: threshold
            for status, threshold in thresholds.items()
            if status != ShipmentStatus.COMPLETED
        }
        self.system_actor_id = system_actor_id
        self.batch_limit = batch_limit
        self.deadline_seconds = deadline_seconds
        self._monotonic = monotonic

    def select_candidates(self, now: datetime) -> List[DwellCandidate]:
        """
        Overdue shipments, most overdue first.

        Raises:
            StorageError: If the candidate query fails; the whole run fails
        """
        try:
            return self.service.ledger.find_overdue(self.thresholds, now, limit=self.batch_limit)
        except SQLAlchemyError as e:
            self.service.db.rollback()
            raise StorageError(f"Could not select overdue shipments: {e}") from e

    def advance(self, candidate: DwellCandidate, now: datetime) -> bool:
        """
        Move one candidate to the status after the one it was selected at.

        Returns:
            True if this call advanced the shipment, False if it was already there

        Raises:
            LifecycleError: If the transition is rejected or the write fails
        """
        target = next_status(candidate.status)
        if target is None:
            return False
        note = render_auto_approval_note(candidate, self.thresholds[candidate.status], target)
        result = self.service.transition(
            candidate.shipment_id,
            target,
            actor_id=self.system_actor_id,
            trigger=TriggerKind.SYSTEM,
            notes=note,
            timestamp=now,
        )
        return result.changed

    def run(self, now: Optional[datetime] = None) -> AutoApprovalResult:
        """
        Execute one auto-approval pass.

        Args:
            now: Reference instant (defaults to the current time)

        Returns:
            AutoApprovalResult with advanced/skipped/failed counts

        Raises:
            StorageError: If candidates cannot be read
        """
        now = to_naive_utc(now) if now else utcnow()
        result = AutoApprovalResult(started_at=now)
        started = self._monotonic()

        logger.info("Starting auto-approval run at %s", now.isoformat())
        candidates = self.select_candidates(now)
        result.candidates = len(candidates)

        for index, candidate in enumerate(candidates):
            if self._deadline_exceeded(started):
                result.partial = True
                logger.warning(
                    "Auto-approval deadline of %ss reached; %d candidates left for the next run",
                    self.deadline_seconds,
                    len(candidates) - index,
                )
                break

            try:
                if self.advance(candidate, now):
                    result.advanced += 1
                else:
                    result.skipped += 1
            except LifecycleError as e:
                result.failed += 1
                result.errors.append({"shipment_id": str(candidate.shipment_id), "error": str(e)})
                logger.warning("Auto-approval failed for shipment %s: %s", candidate.shipment_id, e)
            except Exception as e:
                self.service.db.rollback()
                result.failed += 1
                result.errors.append({"shipment_id": str(candidate.shipment_id), "error": str(e)})
                logger.exception("Unexpected auto-approval error for shipment %s", candidate.shipment_id)

        if self.batch_limit is not None and len(candidates) >= self.batch_limit:
            result.partial = True

        result.completed_at = utcnow()
        logger.info(
            "Auto-approval run finished: %d advanced, %d skipped, %d failed of %d candidates",
            result.advanced,
            result.skipped,
            result.failed,
            result.candidates,
        )
        return result

    def _deadline_exceeded(self, started: float) -> bool:
        if self.deadline_seconds is None:
            return False
        return self._monotonic() - started >= self.deadline_seconds
