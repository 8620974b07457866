"""Stage ledger: durable storage for shipments and their stage records.

The shipment row is a projection of its stage records. Every write goes
through ``record_transition`` (or ``record_creation``), which adds the stage
record and updates the projection in the same session so they commit
together. Concurrent writers to one shipment are serialized by a row lock
where the database supports ``SELECT ... FOR UPDATE`` and by the shipment's
version counter everywhere else.
"""

import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, List, NamedTuple, Optional
from uuid import UUID

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from wastetrack.common.clock import utcnow
from wastetrack.db.models import Shipment, ShipmentStage

from .errors import ShipmentNotFoundError
from .states import ShipmentStatus, StageName, TriggerKind


class Location(NamedTuple):
    latitude: float
    longitude: float


class DwellCandidate(NamedTuple):
    """A shipment that has stayed at its status longer than allowed."""

    shipment_id: UUID
    status: ShipmentStatus
    stage_entered_at: datetime
    elapsed: timedelta


def generate_shipment_number(created_at: datetime) -> str:
    """Human-readable shipment number, e.g. ``WT-20260119-4F7A2C``."""
    return f"WT-{created_at:%Y%m%d}-{secrets.token_hex(3).upper()}"


class StageLedger:
    """Shipment and stage record persistence over a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, shipment_id: UUID) -> Shipment:
        """Point lookup by id."""
        shipment = self.db.query(Shipment).filter(Shipment.id == shipment_id).first()
        if shipment is None:
            raise ShipmentNotFoundError(shipment_id)
        return shipment

    def get_for_update(self, shipment_id: UUID) -> Shipment:
        """Lookup that locks the row until the current transaction ends."""
        shipment = (
            self.db.query(Shipment)
            .filter(Shipment.id == shipment_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if shipment is None:
            raise ShipmentNotFoundError(shipment_id)
        return shipment

    def list_stages(self, shipment_id: UUID) -> List[ShipmentStage]:
        """Stage records for a shipment in commit order."""
        return (
            self.db.query(ShipmentStage)
            .filter(ShipmentStage.shipment_id == shipment_id)
            .order_by(ShipmentStage.id.asc())
            .all()
        )

    def record_creation(
        self,
        *,
        actor_id: UUID,
        timestamp: Optional[datetime] = None,
        notes: Optional[str] = None,
        **fields: Any,
    ) -> Shipment:
        """Insert a shipment in CREATED together with its initial stage record."""
        created_at = timestamp or utcnow()
        shipment = Shipment(
            shipment_number=generate_shipment_number(created_at),
            status=ShipmentStatus.CREATED.value,
            stage_entered_at=created_at,
            created_by=actor_id,
            created_at=created_at,
            updated_at=created_at,
            **fields,
        )
        self.db.add(shipment)
        self.db.flush()

        self.append_stage(
            shipment,
            stage=StageName.CREATED,
            from_status=None,
            to_status=ShipmentStatus.CREATED,
            actor_id=actor_id,
            trigger=TriggerKind.HUMAN,
            timestamp=created_at,
            notes=notes,
        )
        self.db.flush()
        return shipment

    def append_stage(
        self,
        shipment: Shipment,
        *,
        stage: StageName,
        from_status: Optional[ShipmentStatus],
        to_status: ShipmentStatus,
        actor_id: UUID,
        trigger: TriggerKind,
        timestamp: datetime,
        notes: Optional[str] = None,
        location: Optional[Location] = None,
    ) -> ShipmentStage:
        """Add a stage record to the session without flushing."""
        record = ShipmentStage(
            shipment_id=shipment.id,
            stage=stage.value,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value,
            trigger=trigger.value,
            timestamp=timestamp,
            user_id=actor_id,
            notes=notes,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
        )
        self.db.add(record)
        return record

    def record_transition(
        self,
        shipment: Shipment,
        changes: Dict[str, Any],
        *,
        stage: StageName,
        from_status: ShipmentStatus,
        to_status: ShipmentStatus,
        actor_id: UUID,
        trigger: TriggerKind,
        timestamp: datetime,
        notes: Optional[str] = None,
        location: Optional[Location] = None,
    ) -> ShipmentStage:
        """
        Apply projection changes and append the stage record, then flush.

        The flush issues ``UPDATE shipments ... WHERE id = :id AND version = :v``;
        if another writer committed first it raises ``StaleDataError``.
        Set-once milestone columns are never overwritten.
        """
        for field, value in changes.items():
            if field.endswith("_time") or field == "completed_at":
                if getattr(shipment, field) is not None:
                    continue
            setattr(shipment, field, value)
        if location is not None:
            self._set_location(shipment, location, timestamp)
        shipment.updated_at = utcnow()

        record = self.append_stage(
            shipment,
            stage=stage,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
            trigger=trigger,
            timestamp=timestamp,
            notes=notes,
            location=location,
        )
        self.db.flush()
        return record

    def update_location(self, shipment: Shipment, location: Location, captured_at: datetime) -> bool:
        """Store the position unless a newer one is already recorded."""
        if not self._set_location(shipment, location, captured_at):
            return False
        shipment.updated_at = utcnow()
        self.db.flush()
        return True

    def set_report(self, shipment: Shipment, field: str, content: str) -> None:
        setattr(shipment, field, content)
        shipment.updated_at = utcnow()
        self.db.flush()

    def find_overdue(
        self,
        thresholds: Dict[ShipmentStatus, timedelta],
        now: datetime,
        *,
        limit: Optional[int] = None,
    ) -> List[DwellCandidate]:
        """
        Shipments whose time at the current status exceeds its threshold.

        Ordered most overdue (longest elapsed) first; ties broken by id so the
        selection is deterministic.
        """
        clauses = [
            and_(
                Shipment.status == status.value,
                Shipment.stage_entered_at < now - threshold,
            )
            for status, threshold in thresholds.items()
            if status != ShipmentStatus.COMPLETED
        ]
        if not clauses:
            return []

        query = (
            self.db.query(Shipment.id, Shipment.status, Shipment.stage_entered_at)
            .filter(Shipment.status != ShipmentStatus.COMPLETED.value)
            .filter(or_(*clauses))
            .order_by(Shipment.stage_entered_at.asc(), Shipment.id.asc())
        )
        if limit is not None:
            query = query.limit(limit)

        return [
            DwellCandidate(
                shipment_id=row.id,
                status=ShipmentStatus(row.status),
                stage_entered_at=row.stage_entered_at,
                elapsed=now - row.stage_entered_at,
            )
            for row in query.all()
        ]

    @staticmethod
    def _set_location(shipment: Shipment, location: Location, captured_at: datetime) -> bool:
        # Current location is the most recent fix, not the last one received
        if shipment.location_captured_at is not None and captured_at < shipment.location_captured_at:
            return False
        shipment.current_latitude = location.latitude
        shipment.current_longitude = location.longitude
        shipment.location_captured_at = captured_at
        return True
