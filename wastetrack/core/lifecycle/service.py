"""Shipment lifecycle service.

The only component that writes shipments and stage records. Used directly
by the manual transition API and by the auto-approval engine.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Optional, Type, TypeVar, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from wastetrack.common.clock import to_naive_utc, utcnow
from wastetrack.db.models import Shipment, ShipmentStage

from .errors import (
    FutureTimestampError,
    InvalidInputError,
    InvalidTransitionError,
    LifecycleError,
    StageRequirementError,
    StorageError,
    TerminalStateError,
    WriteOnceViolationError,
)
from .events import AuditSink, TransitionEvent
from .ledger import Location, StageLedger
from .machine import ShipmentStateMachine, stage_timestamps_are_ordered
from .states import (
    REPORT_FIELDS,
    REPORT_MIN_STATUS,
    STAGE_TIMESTAMP_FIELDS,
    ReportKind,
    ShipmentStatus,
    StageName,
    TriggerKind,
    is_terminal,
    status_index,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
E = TypeVar("E", bound=Enum)

# Attempts for a write that lost the version race to another writer
MAX_WRITE_ATTEMPTS = 3

# How far ahead of the server clock a caller-supplied instant may be
DEFAULT_MAX_CLOCK_SKEW = timedelta(minutes=5)


@dataclass
class TransitionResult:
    """Outcome of a transition request."""

    shipment: Shipment
    from_status: ShipmentStatus
    to_status: ShipmentStatus
    changed: bool
    stage_record: Optional[ShipmentStage] = None

    @property
    def message(self) -> str:
        if not self.changed:
            return (
                f"Shipment {self.shipment.shipment_number} is already {self.to_status.value}; "
                "nothing to do"
            )
        return (
            f"Shipment {self.shipment.shipment_number} moved from "
            f"{self.from_status.value} to {self.to_status.value}"
        )


def auto_approval_deadline(
    shipment: Shipment,
    thresholds: Dict[ShipmentStatus, timedelta],
) -> Optional[datetime]:
    """Instant after which the shipment becomes eligible for auto-advance."""
    status = ShipmentStatus(shipment.status)
    threshold = thresholds.get(status)
    if threshold is None or is_terminal(status):
        return None
    return shipment.stage_entered_at + threshold


class ShipmentLifecycleService:
    """
    High-level service for shipment lifecycle operations.

    Handles:
    - Creating shipments with their initial stage record
    - Validated, idempotent stage transitions committed atomically
    - Location updates and write-once reports
    - Post-commit delivery of transition events to the audit sink
    """

    def __init__(
        self,
        db: Session,
        *,
        audit_sink: Optional[AuditSink] = None,
        ledger_factory: Callable[[Session], StageLedger] = StageLedger,
        max_clock_skew: timedelta = DEFAULT_MAX_CLOCK_SKEW,
    ):
        """
        Initialize the lifecycle service.

        Args:
            db: Database session; the service commits its own units of work
            audit_sink: Receives one event per committed transition
            ledger_factory: Builds the ledger for the session
            max_clock_skew: Tolerance for caller instants ahead of the server clock
        """
        self.db = db
        self.audit_sink = audit_sink
        self.ledger = ledger_factory(db)
        self.max_clock_skew = max_clock_skew

    def create_shipment(
        self,
        *,
        actor_id: UUID,
        generator_company_id: UUID,
        transporter_company_id: UUID,
        recycler_company_id: UUID,
        waste_type_id: UUID,
        quantity: Union[Decimal, float],
        unit: str,
        driver_id: Optional[UUID] = None,
        description: Optional[str] = None,
        notes: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Shipment:
        """Create a shipment in ``created`` and record its first stage."""
        if quantity <= 0:
            raise InvalidInputError("Quantity must be positive")

        created_at = self._resolve_timestamp(timestamp, "timestamp")

        def _create() -> Shipment:
            return self.ledger.record_creation(
                actor_id=actor_id,
                timestamp=created_at,
                notes=notes,
                generator_company_id=generator_company_id,
                transporter_company_id=transporter_company_id,
                recycler_company_id=recycler_company_id,
                driver_id=driver_id,
                waste_type_id=waste_type_id,
                quantity=quantity,
                unit=unit,
                description=description,
            )

        shipment = self._commit(_create)
        logger.info("Shipment %s created by %s", shipment.shipment_number, actor_id)
        return shipment

    def get_shipment(self, shipment_id: UUID) -> Shipment:
        return self._read(lambda: self.ledger.get(shipment_id))

    def get_history(self, shipment_id: UUID) -> List[ShipmentStage]:
        """Stage records for a shipment, oldest first."""
        def _history() -> List[ShipmentStage]:
            self.ledger.get(shipment_id)
            return self.ledger.list_stages(shipment_id)

        return self._read(_history)

    def transition(
        self,
        shipment_id: UUID,
        target: Union[ShipmentStatus, str],
        *,
        actor_id: UUID,
        trigger: TriggerKind = TriggerKind.HUMAN,
        notes: Optional[str] = None,
        location: Optional[Location] = None,
        timestamp: Optional[datetime] = None,
    ) -> TransitionResult:
        """
        Move a shipment to ``target``.

        Re-requesting the current status succeeds without writing anything.

        Args:
            shipment_id: Shipment to move
            target: Requested status; must be the immediate successor
            actor_id: Acting user, or the system sentinel
            trigger: Human or system
            notes: Optional free text stored on the stage record
            location: Position at the time of the transition
            timestamp: Transition instant (defaults to now)

        Returns:
            TransitionResult with ``changed`` False for an idempotent repeat

        Raises:
            ShipmentNotFoundError: If the shipment does not exist
            TerminalStateError: If the shipment is already completed
            InvalidTransitionError: If target skips ahead or goes backwards
            FutureTimestampError: If timestamp is later than now plus the clock skew
            StorageError: If the ledger write fails
        """
        target = _parse(ShipmentStatus, target)
        when = self._resolve_timestamp(timestamp, "timestamp")
        if location is not None:
            _validate_location(location)

        result = self._with_retry(
            lambda: self._transition_once(
                shipment_id, target,
                actor_id=actor_id,
                trigger=trigger,
                notes=notes,
                location=location,
                timestamp=when,
            ),
            shipment_id,
        )

        if result.changed:
            logger.info(
                "Shipment %s advanced %s -> %s by %s (%s)",
                result.shipment.shipment_number,
                result.from_status.value,
                result.to_status.value,
                actor_id,
                trigger.value,
            )
            self._emit(
                TransitionEvent(
                    shipment_id=result.shipment.id,
                    shipment_number=result.shipment.shipment_number,
                    from_status=result.from_status,
                    to_status=result.to_status,
                    stage=StageName(result.stage_record.stage),
                    actor_id=actor_id,
                    timestamp=when,
                    trigger=trigger,
                    notes=notes,
                    latitude=location.latitude if location else None,
                    longitude=location.longitude if location else None,
                )
            )
        else:
            logger.debug(
                "Shipment %s already at %s; transition is a no-op",
                shipment_id,
                target.value,
            )
        return result

    def update_location(
        self,
        shipment_id: UUID,
        latitude: float,
        longitude: float,
        captured_at: Optional[datetime] = None,
    ) -> Shipment:
        """
        Replace the shipment's latest known position.

        A fix captured before the stored one is ignored, so a late delivery
        never overwrites a newer position.
        """
        location = Location(latitude, longitude)
        _validate_location(location)
        when = self._resolve_timestamp(captured_at, "captured_at")

        def _update() -> Shipment:
            shipment = self.ledger.get_for_update(shipment_id)
            if is_terminal(ShipmentStatus(shipment.status)):
                raise TerminalStateError(shipment_id)
            if not self.ledger.update_location(shipment, location, when):
                logger.info(
                    "Ignoring location for shipment %s captured at %s; stored fix is from %s",
                    shipment.shipment_number,
                    when.isoformat(),
                    shipment.location_captured_at.isoformat(),
                )
            return shipment

        return self._with_retry(lambda: self._commit(_update), shipment_id)

    def attach_report(
        self,
        shipment_id: UUID,
        kind: Union[ReportKind, str],
        content: str,
    ) -> Shipment:
        """
        Record a disposal, recycling or final report.

        Each report can be written once, and only once the shipment has
        reached the stage that produces it.
        """
        kind = _parse(ReportKind, kind)
        if not content or not content.strip():
            raise InvalidInputError("Report content must not be empty")
        field = REPORT_FIELDS[kind]
        required = REPORT_MIN_STATUS[kind]

        def _attach() -> Shipment:
            shipment = self.ledger.get_for_update(shipment_id)
            current = ShipmentStatus(shipment.status)
            if status_index(current) < status_index(required):
                raise StageRequirementError(
                    f"A {kind.value} report can only be attached once shipment "
                    f"{shipment.shipment_number} is {required.value} (currently {current.value})",
                    current,
                    required,
                )
            if getattr(shipment, field):
                raise WriteOnceViolationError(shipment_id, field)
            self.ledger.set_report(shipment, field, content)
            return shipment

        return self._with_retry(lambda: self._commit(_attach), shipment_id)

    def _transition_once(
        self,
        shipment_id: UUID,
        target: ShipmentStatus,
        *,
        actor_id: UUID,
        trigger: TriggerKind,
        notes: Optional[str],
        location: Optional[Location],
        timestamp: datetime,
    ) -> TransitionResult:
        def _apply() -> TransitionResult:
            shipment = self.ledger.get_for_update(shipment_id)
            machine = ShipmentStateMachine(
                shipment_id=shipment.id,
                current_status=ShipmentStatus(shipment.status),
                stage_entered_at=shipment.stage_entered_at,
            )
            plan = machine.plan(target, timestamp)
            if plan.is_noop:
                return TransitionResult(shipment, plan.from_status, plan.to_status, changed=False)

            changes = machine.apply(plan, timestamp)
            record = self.ledger.record_transition(
                shipment,
                changes,
                stage=plan.rule.stage,
                from_status=plan.from_status,
                to_status=plan.to_status,
                actor_id=actor_id,
                trigger=trigger,
                timestamp=timestamp,
                notes=notes,
                location=location,
            )
            milestones = {field: getattr(shipment, field) for field in STAGE_TIMESTAMP_FIELDS}
            if not stage_timestamps_are_ordered(milestones):
                raise InvalidTransitionError(
                    f"Recording {plan.to_status.value} at {timestamp.isoformat()} would put "
                    f"shipment {shipment.shipment_number} milestones out of order",
                    plan.from_status,
                    plan.to_status,
                )
            return TransitionResult(shipment, plan.from_status, plan.to_status, True, record)

        return self._commit(_apply)

    def _resolve_timestamp(self, value: Optional[datetime], field: str) -> datetime:
        """Normalize a caller instant to naive UTC, defaulting to now."""
        now = utcnow()
        if value is None:
            return now
        value = to_naive_utc(value)
        latest = now + self.max_clock_skew
        if value > latest:
            raise FutureTimestampError(field, value, latest)
        return value

    def _commit(self, work: Callable[[], T]) -> T:
        """Run ``work`` and commit; roll back on any failure."""
        try:
            result = work()
            self.db.commit()
            return result
        except StaleDataError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Ledger write failed: %s", e)
            raise StorageError(f"Ledger write failed: {e}") from e
        except (LifecycleError, ValueError):
            self.db.rollback()
            raise

    def _read(self, work: Callable[[], T]) -> T:
        try:
            return work()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError(f"Ledger read failed: {e}") from e

    def _with_retry(self, work: Callable[[], T], shipment_id: UUID) -> T:
        """Re-run ``work`` against fresh state when another writer won the race."""
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            try:
                return work()
            except StaleDataError:
                logger.info(
                    "Shipment %s changed concurrently (attempt %d/%d); re-reading",
                    shipment_id,
                    attempt,
                    MAX_WRITE_ATTEMPTS,
                )
        raise StorageError(
            f"Shipment {shipment_id} kept changing concurrently; gave up after "
            f"{MAX_WRITE_ATTEMPTS} attempts"
        )

    def _emit(self, event: TransitionEvent) -> None:
        """Hand an event to the audit sink; sink failures never fail the transition."""
        if self.audit_sink is None:
            return
        try:
            self.audit_sink.emit(event)
        except Exception as e:
            logger.error(
                "Audit sink failed for shipment %s (%s): %s",
                event.shipment_number,
                event.to_status.value,
                e,
            )


def _validate_location(location: Location) -> None:
    if not -90.0 <= location.latitude <= 90.0:
        raise InvalidInputError(f"Latitude out of range: {location.latitude}")
    if not -180.0 <= location.longitude <= 180.0:
        raise InvalidInputError(f"Longitude out of range: {location.longitude}")


def _parse(enum_type: Type[E], value: Union[E, str]) -> E:
    try:
        return enum_type(value)
    except ValueError:
        choices = ", ".join(member.value for member in enum_type)
        raise InvalidInputError(f"Unknown {enum_type.__name__} {value!r}; expected one of: {choices}")
