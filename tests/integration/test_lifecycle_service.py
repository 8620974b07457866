"""Integration tests for the shipment lifecycle service.

Runs the service against a real SQLite database:
1. Creation and the initial stage record
2. Manual transitions, idempotent repeats and rejected requests
3. Location updates and write-once reports
4. Concurrent writers racing on the same shipment
"""

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from wastetrack.common.clock import utcnow
from wastetrack.core.lifecycle import (
    FutureTimestampError,
    InvalidTransitionError,
    Location,
    ShipmentLifecycleService,
    ShipmentNotFoundError,
    ShipmentStatus,
    StageLedger,
    StageRequirementError,
    StorageError,
    TerminalStateError,
    TriggerKind,
    WriteOnceViolationError,
    auto_approval_deadline,
)
from wastetrack.core.lifecycle.machine import stage_timestamps_are_ordered
from wastetrack.core.lifecycle.states import STAGE_TIMESTAMP_FIELDS
from wastetrack.db.models import Shipment, ShipmentStage

from tests.factories import create_shipment


pytestmark = pytest.mark.integration

T0 = datetime(2026, 3, 2, 8, 0, 0)


def _stage_count(db_session, shipment_id) -> int:
    return db_session.query(ShipmentStage).filter(ShipmentStage.shipment_id == shipment_id).count()


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreateShipment:

    def test_creates_shipment_with_initial_stage(self, lifecycle_service, actor_id):
        shipment = lifecycle_service.create_shipment(
            actor_id=actor_id,
            generator_company_id=uuid4(),
            transporter_company_id=uuid4(),
            recycler_company_id=uuid4(),
            waste_type_id=uuid4(),
            quantity=Decimal("3.250"),
            unit="tonnes",
            notes="Pallets of PET bales",
            timestamp=T0,
        )

        assert shipment.status == "created"
        assert shipment.stage_entered_at == T0
        assert shipment.shipment_number.startswith("WT-20260302-")
        assert shipment.version == 1

        history = lifecycle_service.get_history(shipment.id)
        assert len(history) == 1
        assert history[0].stage == "created"
        assert history[0].from_status is None
        assert history[0].user_id == actor_id
        assert history[0].notes == "Pallets of PET bales"

    def test_quantity_must_be_positive(self, lifecycle_service, actor_id, db_session):
        with pytest.raises(ValueError, match="Quantity must be positive"):
            lifecycle_service.create_shipment(
                actor_id=actor_id,
                generator_company_id=uuid4(),
                transporter_company_id=uuid4(),
                recycler_company_id=uuid4(),
                waste_type_id=uuid4(),
                quantity=0,
                unit="kg",
            )
        assert db_session.query(Shipment).count() == 0

    def test_aware_timestamps_are_stored_as_utc(self, lifecycle_service, actor_id):
        from datetime import timezone

        aware = datetime(2026, 3, 2, 10, 0, tzinfo=timezone(timedelta(hours=2)))
        shipment = lifecycle_service.create_shipment(
            actor_id=actor_id,
            generator_company_id=uuid4(),
            transporter_company_id=uuid4(),
            recycler_company_id=uuid4(),
            waste_type_id=uuid4(),
            quantity=1,
            unit="kg",
            timestamp=aware,
        )
        assert shipment.stage_entered_at == T0


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


class TestTransitions:

    def test_advance_appends_one_stage_and_stamps_milestone(
        self, lifecycle_service, db_session, actor_id, audit_sink,
    ):
        shipment = create_shipment(db_session, stage_entered_at=T0)
        at = T0 + timedelta(hours=2)

        result = lifecycle_service.transition(
            shipment.id,
            ShipmentStatus.IN_TRANSIT,
            actor_id=actor_id,
            notes="Truck left the yard",
            location=Location(52.52, 13.405),
            timestamp=at,
        )

        assert result.changed
        assert result.from_status == ShipmentStatus.CREATED
        assert result.to_status == ShipmentStatus.IN_TRANSIT
        assert "moved from created to in_transit" in result.message

        db_session.expire_all()
        stored = db_session.get(Shipment, shipment.id)
        assert stored.status == "in_transit"
        assert stored.departure_time == at
        assert stored.stage_entered_at == at
        assert stored.current_latitude == 52.52
        assert stored.location_captured_at == at
        assert stored.version == 2

        record = result.stage_record
        assert record.stage == "departure"
        assert record.from_status == "created"
        assert record.to_status == "in_transit"
        assert record.trigger == "human"
        assert record.user_id == actor_id
        assert record.longitude == 13.405
        assert _stage_count(db_session, shipment.id) == 2

        assert len(audit_sink.events) == 1
        event = audit_sink.events[0]
        assert event.shipment_id == shipment.id
        assert event.trigger == TriggerKind.HUMAN
        assert event.actor_id == actor_id
        assert event.latitude == 52.52

    def test_full_lifecycle_keeps_milestones_ordered(self, lifecycle_service, db_session, actor_id):
        shipment = create_shipment(db_session, stage_entered_at=T0)
        at = T0
        for target in (
            ShipmentStatus.IN_TRANSIT,
            ShipmentStatus.DELIVERED,
            ShipmentStatus.SORTING,
            ShipmentStatus.RECYCLING,
            ShipmentStatus.COMPLETED,
        ):
            at += timedelta(hours=5)
            assert lifecycle_service.transition(shipment.id, target, actor_id=actor_id, timestamp=at).changed

        db_session.expire_all()
        stored = db_session.get(Shipment, shipment.id)
        values = {field: getattr(stored, field) for field in STAGE_TIMESTAMP_FIELDS}
        assert all(value is not None for value in values.values())
        assert stored.sorting_end_time == stored.recycling_start_time
        assert stored.recycling_end_time == stored.completed_at
        assert stage_timestamps_are_ordered(values)

        stages = [s.stage for s in lifecycle_service.get_history(shipment.id)]
        assert stages == ["created", "departure", "arrival", "sorting_start", "recycling_start", "completed"]

    def test_repeat_of_current_status_is_noop(self, lifecycle_service, db_session, actor_id, audit_sink):
        shipment = create_shipment(db_session, status=ShipmentStatus.DELIVERED, stage_entered_at=T0)
        before = _stage_count(db_session, shipment.id)

        result = lifecycle_service.transition(
            shipment.id, ShipmentStatus.DELIVERED, actor_id=actor_id, timestamp=T0 + timedelta(hours=1),
        )

        assert not result.changed
        assert "already delivered" in result.message
        assert result.stage_record is None
        assert _stage_count(db_session, shipment.id) == before
        assert audit_sink.events == []
        db_session.expire_all()
        assert db_session.get(Shipment, shipment.id).stage_entered_at == T0

    def test_skip_is_rejected_without_writes(self, lifecycle_service, db_session, actor_id, audit_sink):
        shipment = create_shipment(db_session)

        with pytest.raises(InvalidTransitionError) as exc_info:
            lifecycle_service.transition(shipment.id, ShipmentStatus.SORTING, actor_id=actor_id)

        assert exc_info.value.code == "invalid_transition"
        assert _stage_count(db_session, shipment.id) == 1
        assert audit_sink.events == []

    def test_completed_is_terminal(self, lifecycle_service, db_session, actor_id):
        shipment = create_shipment(db_session, status=ShipmentStatus.COMPLETED)
        before = _stage_count(db_session, shipment.id)

        with pytest.raises(TerminalStateError):
            lifecycle_service.transition(shipment.id, ShipmentStatus.RECYCLING, actor_id=actor_id)
        assert not lifecycle_service.transition(
            shipment.id, ShipmentStatus.COMPLETED, actor_id=actor_id,
        ).changed
        assert _stage_count(db_session, shipment.id) == before

    def test_unknown_shipment(self, lifecycle_service, db_session, actor_id):
        create_shipment(db_session)
        stages_before = db_session.query(ShipmentStage).count()

        with pytest.raises(ShipmentNotFoundError):
            lifecycle_service.transition(uuid4(), ShipmentStatus.IN_TRANSIT, actor_id=actor_id)
        with pytest.raises(ShipmentNotFoundError):
            lifecycle_service.get_history(uuid4())
        assert db_session.query(ShipmentStage).count() == stages_before

    def test_timestamp_before_current_stage(self, lifecycle_service, db_session, actor_id):
        shipment = create_shipment(db_session, status=ShipmentStatus.IN_TRANSIT, stage_entered_at=T0)

        with pytest.raises(InvalidTransitionError, match="precedes"):
            lifecycle_service.transition(
                shipment.id, ShipmentStatus.DELIVERED, actor_id=actor_id, timestamp=T0 - timedelta(hours=1),
            )

    def test_future_timestamp_is_rejected(self, lifecycle_service, db_session, actor_id, audit_sink):
        """A far-future instant would park the shipment beyond auto-approval."""
        shipment = create_shipment(db_session, stage_entered_at=utcnow() - timedelta(hours=1))

        with pytest.raises(FutureTimestampError) as exc_info:
            lifecycle_service.transition(
                shipment.id,
                ShipmentStatus.IN_TRANSIT,
                actor_id=actor_id,
                timestamp=utcnow() + timedelta(days=3650),
            )

        assert exc_info.value.code == "future_timestamp"
        assert "in the future" in str(exc_info.value)
        assert _stage_count(db_session, shipment.id) == 1
        assert audit_sink.events == []

        # The shipment can still move at the current time
        assert lifecycle_service.transition(shipment.id, ShipmentStatus.IN_TRANSIT, actor_id=actor_id).changed

    def test_small_clock_skew_is_tolerated(self, lifecycle_service, db_session, actor_id):
        shipment = create_shipment(db_session, stage_entered_at=utcnow() - timedelta(hours=1))
        ahead = utcnow() + timedelta(minutes=1)

        result = lifecycle_service.transition(
            shipment.id, ShipmentStatus.IN_TRANSIT, actor_id=actor_id, timestamp=ahead,
        )

        assert result.changed
        assert result.shipment.stage_entered_at == ahead

    def test_clock_skew_is_configurable(self, db_session, actor_id):
        service = ShipmentLifecycleService(db_session, max_clock_skew=timedelta(0))
        shipment = create_shipment(db_session, stage_entered_at=utcnow() - timedelta(hours=1))

        with pytest.raises(FutureTimestampError):
            service.transition(
                shipment.id,
                ShipmentStatus.IN_TRANSIT,
                actor_id=actor_id,
                timestamp=utcnow() + timedelta(minutes=1),
            )

    def test_out_of_order_milestones_are_rejected(self, lifecycle_service, db_session, actor_id):
        shipment = create_shipment(db_session, status=ShipmentStatus.IN_TRANSIT, stage_entered_at=T0)
        shipment.departure_time = T0 + timedelta(hours=5)
        db_session.commit()
        before = _stage_count(db_session, shipment.id)

        with pytest.raises(InvalidTransitionError, match="out of order"):
            lifecycle_service.transition(
                shipment.id, ShipmentStatus.DELIVERED, actor_id=actor_id, timestamp=T0 + timedelta(hours=1),
            )

        db_session.expire_all()
        stored = db_session.get(Shipment, shipment.id)
        assert stored.status == "in_transit"
        assert stored.arrival_time is None
        assert _stage_count(db_session, shipment.id) == before

    def test_unknown_target_status(self, lifecycle_service, db_session, actor_id):
        shipment = create_shipment(db_session)
        with pytest.raises(ValueError, match="Unknown ShipmentStatus 'shipped'"):
            lifecycle_service.transition(shipment.id, "shipped", actor_id=actor_id)

    def test_invalid_location_is_rejected(self, lifecycle_service, db_session, actor_id):
        shipment = create_shipment(db_session)
        with pytest.raises(ValueError, match="Latitude"):
            lifecycle_service.transition(
                shipment.id, ShipmentStatus.IN_TRANSIT, actor_id=actor_id, location=Location(91.0, 0.0),
            )
        assert _stage_count(db_session, shipment.id) == 1

    def test_audit_sink_failure_does_not_fail_transition(self, db_session, actor_id):
        class BrokenSink:
            def emit(self, event):
                raise RuntimeError("audit backend down")

        service = ShipmentLifecycleService(db_session, audit_sink=BrokenSink())
        shipment = create_shipment(db_session)

        assert service.transition(shipment.id, ShipmentStatus.IN_TRANSIT, actor_id=actor_id).changed
        db_session.expire_all()
        assert db_session.get(Shipment, shipment.id).status == "in_transit"


# ---------------------------------------------------------------------------
# Location and reports
# ---------------------------------------------------------------------------


class TestLocationAndReports:

    def test_update_location_adds_no_stage(self, lifecycle_service, db_session):
        shipment = create_shipment(db_session, status=ShipmentStatus.IN_TRANSIT)

        updated = lifecycle_service.update_location(shipment.id, 48.85, 2.35, captured_at=T0)

        assert updated.current_latitude == 48.85
        assert updated.current_longitude == 2.35
        assert updated.location_captured_at == T0
        assert updated.status == "in_transit"
        assert _stage_count(db_session, shipment.id) == 2

    def test_older_fix_does_not_replace_newer_location(self, lifecycle_service, db_session):
        shipment = create_shipment(db_session, status=ShipmentStatus.IN_TRANSIT)
        newer = T0 + timedelta(hours=5)

        lifecycle_service.update_location(shipment.id, 48.85, 2.35, captured_at=newer)
        returned = lifecycle_service.update_location(shipment.id, 1.0, 1.0, captured_at=T0)

        assert returned.current_latitude == 48.85
        db_session.expire_all()
        stored = db_session.get(Shipment, shipment.id)
        assert (stored.current_latitude, stored.current_longitude) == (48.85, 2.35)
        assert stored.location_captured_at == newer

    def test_transition_location_older_than_stored_fix_is_kept_out(
        self, lifecycle_service, db_session, actor_id,
    ):
        shipment = create_shipment(db_session, stage_entered_at=T0)
        lifecycle_service.update_location(shipment.id, 48.85, 2.35, captured_at=T0 + timedelta(hours=3))

        result = lifecycle_service.transition(
            shipment.id,
            ShipmentStatus.IN_TRANSIT,
            actor_id=actor_id,
            location=Location(10.0, 10.0),
            timestamp=T0 + timedelta(hours=1),
        )

        assert result.changed
        assert result.stage_record.latitude == 10.0
        db_session.expire_all()
        assert db_session.get(Shipment, shipment.id).current_latitude == 48.85

    def test_future_location_fix_is_rejected(self, lifecycle_service, db_session):
        shipment = create_shipment(db_session, status=ShipmentStatus.IN_TRANSIT)

        with pytest.raises(FutureTimestampError, match="captured_at"):
            lifecycle_service.update_location(
                shipment.id, 48.85, 2.35, captured_at=utcnow() + timedelta(days=1),
            )

        db_session.expire_all()
        assert db_session.get(Shipment, shipment.id).current_latitude is None

    def test_update_location_rejected_when_completed(self, lifecycle_service, db_session):
        shipment = create_shipment(db_session, status=ShipmentStatus.COMPLETED)
        with pytest.raises(TerminalStateError):
            lifecycle_service.update_location(shipment.id, 1.0, 1.0)

    def test_update_location_range(self, lifecycle_service, db_session):
        shipment = create_shipment(db_session)
        with pytest.raises(ValueError, match="Longitude"):
            lifecycle_service.update_location(shipment.id, 0.0, 181.0)

    def test_report_is_write_once(self, lifecycle_service, db_session):
        shipment = create_shipment(db_session, status=ShipmentStatus.DELIVERED)

        lifecycle_service.attach_report(shipment.id, "disposal", "Received 12.5 t, no contamination")
        with pytest.raises(WriteOnceViolationError) as exc_info:
            lifecycle_service.attach_report(shipment.id, "disposal", "Second attempt")

        assert exc_info.value.field == "disposal_report"
        db_session.expire_all()
        assert db_session.get(Shipment, shipment.id).disposal_report == "Received 12.5 t, no contamination"

    def test_report_requires_stage(self, lifecycle_service, db_session):
        shipment = create_shipment(db_session, status=ShipmentStatus.SORTING)

        with pytest.raises(StageRequirementError) as exc_info:
            lifecycle_service.attach_report(shipment.id, "recycling", "Too early")
        assert exc_info.value.required_status == ShipmentStatus.RECYCLING

        with pytest.raises(StageRequirementError):
            lifecycle_service.attach_report(shipment.id, "final", "Too early")

    def test_final_report_on_completed(self, lifecycle_service, db_session):
        shipment = create_shipment(db_session, status=ShipmentStatus.COMPLETED)
        updated = lifecycle_service.attach_report(shipment.id, "final", "Certificate of recycling #88")
        assert updated.final_report == "Certificate of recycling #88"

    def test_empty_report(self, lifecycle_service, db_session):
        shipment = create_shipment(db_session, status=ShipmentStatus.DELIVERED)
        with pytest.raises(ValueError, match="must not be empty"):
            lifecycle_service.attach_report(shipment.id, "disposal", "   ")


# ---------------------------------------------------------------------------
# Auto-approval deadline projection
# ---------------------------------------------------------------------------


class TestAutoApprovalDeadline:

    def test_deadline_for_open_stage(self, db_session):
        shipment = create_shipment(db_session, status=ShipmentStatus.SORTING, stage_entered_at=T0)
        thresholds = {ShipmentStatus.SORTING: timedelta(hours=72)}
        assert auto_approval_deadline(shipment, thresholds) == T0 + timedelta(hours=72)

    def test_no_deadline_without_threshold_or_when_completed(self, db_session):
        sorting = create_shipment(db_session, status=ShipmentStatus.SORTING)
        completed = create_shipment(db_session, status=ShipmentStatus.COMPLETED)
        assert auto_approval_deadline(sorting, {}) is None
        assert auto_approval_deadline(completed, {ShipmentStatus.COMPLETED: timedelta(hours=1)}) is None


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class RacingLedger(StageLedger):
    """Ledger that lets another writer commit right after the first read."""

    def __init__(self, db, competitor):
        super().__init__(db)
        self.competitor = competitor
        self.reads = 0

    def get_for_update(self, shipment_id):
        shipment = super().get_for_update(shipment_id)
        self.reads += 1
        if self.reads == 1:
            self.competitor(shipment_id)
        return shipment


class TestConcurrentWriters:

    def test_same_target_race_records_one_transition(self, session_factory, db_session, actor_id, audit_sink):
        shipment = create_shipment(db_session, stage_entered_at=T0)
        other_actor = uuid4()

        def competitor(shipment_id):
            other = session_factory()
            try:
                ShipmentLifecycleService(other).transition(
                    shipment_id,
                    ShipmentStatus.IN_TRANSIT,
                    actor_id=other_actor,
                    timestamp=T0 + timedelta(hours=1),
                )
            finally:
                other.close()

        racer = session_factory()
        try:
            service = ShipmentLifecycleService(
                racer,
                audit_sink=audit_sink,
                ledger_factory=lambda db: RacingLedger(db, competitor),
            )
            result = service.transition(
                shipment.id,
                ShipmentStatus.IN_TRANSIT,
                actor_id=actor_id,
                trigger=TriggerKind.SYSTEM,
                timestamp=T0 + timedelta(hours=1),
            )
            reads = service.ledger.reads
        finally:
            racer.close()

        assert not result.changed
        assert reads == 2
        assert audit_sink.events == []

        stages = db_session.query(ShipmentStage).filter(
            ShipmentStage.shipment_id == shipment.id,
            ShipmentStage.stage == "departure",
        ).all()
        assert len(stages) == 1
        assert stages[0].user_id == other_actor

        db_session.expire_all()
        stored = db_session.get(Shipment, shipment.id)
        assert stored.status == "in_transit"
        assert stored.version == 2

    def test_storage_failure_surfaces_as_storage_error(self, db_session, actor_id, monkeypatch):
        shipment = create_shipment(db_session)
        service = ShipmentLifecycleService(db_session)

        def broken_flush(*args, **kwargs):
            raise OperationalError("UPDATE shipments", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db_session, "flush", broken_flush)
        with pytest.raises(StorageError, match="Ledger write failed"):
            service.transition(shipment.id, ShipmentStatus.IN_TRANSIT, actor_id=actor_id)
        monkeypatch.undo()

        db_session.expire_all()
        assert db_session.get(Shipment, shipment.id).status == "created"
        assert _stage_count(db_session, shipment.id) == 1
