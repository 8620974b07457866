"""Shipment and stage ledger models.

``shipments`` holds the mutable projection (current status, milestone
timestamps, location, reports). ``shipment_stages`` is the append-only
event log it is projected from. Both are only written through
``wastetrack.core.lifecycle.ledger.StageLedger``.
"""

import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from wastetrack.common.clock import utcnow
from wastetrack.db.base import Base


class Shipment(Base):
    """
    One physical consignment of waste moving through custody.

    Party references are weak: the shipment does not own companies or drivers.
    """
    __tablename__ = "shipments"
    __table_args__ = (
        CheckConstraint(
            "status IN ('created', 'in_transit', 'delivered', 'sorting', 'recycling', 'completed')",
            name="ck_shipments_status",
        ),
        # Dwell scan: WHERE status = ? AND stage_entered_at < ?
        Index("ix_shipments_status_stage_entered_at", "status", "stage_entered_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    shipment_number = Column(String(32), nullable=False, unique=True, index=True)

    # Parties
    generator_company_id = Column(Uuid, nullable=False, index=True)
    transporter_company_id = Column(Uuid, nullable=False, index=True)
    recycler_company_id = Column(Uuid, nullable=False, index=True)
    driver_id = Column(Uuid, nullable=True, index=True)

    # Classification
    waste_type_id = Column(Uuid, nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit = Column(String(20), nullable=False)
    description = Column(Text, nullable=True)

    # Workflow state
    status = Column(String(20), nullable=False, default="created", index=True)
    stage_entered_at = Column(DateTime, nullable=False, index=True)
    version = Column(Integer, nullable=False)

    # Milestones (set once)
    departure_time = Column(DateTime, nullable=True)
    arrival_time = Column(DateTime, nullable=True)
    sorting_start_time = Column(DateTime, nullable=True)
    sorting_end_time = Column(DateTime, nullable=True)
    recycling_start_time = Column(DateTime, nullable=True)
    recycling_end_time = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Latest known position
    current_latitude = Column(Float, nullable=True)
    current_longitude = Column(Float, nullable=True)
    location_captured_at = Column(DateTime, nullable=True)

    # Reports (write-once)
    disposal_report = Column(Text, nullable=True)
    recycling_report = Column(Text, nullable=True)
    final_report = Column(Text, nullable=True)

    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    stages = relationship(
        "ShipmentStage",
        back_populates="shipment",
        order_by="ShipmentStage.id",
    )

    # UPDATE ... WHERE version = :seen; a concurrent writer makes the flush fail
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Shipment {self.shipment_number} [{self.status}]>"


class ShipmentStage(Base):
    """
    Immutable record of one stage transition.

    ``user_id`` holds the system sentinel for automatic transitions.
    """
    __tablename__ = "shipment_stages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    shipment_id = Column(Uuid, ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, index=True)

    stage = Column(String(32), nullable=False)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    trigger = Column(String(10), nullable=False, default="human")

    timestamp = Column(DateTime, nullable=False, index=True)
    user_id = Column(Uuid, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    shipment = relationship("Shipment", back_populates="stages")

    def __repr__(self) -> str:
        return f"<ShipmentStage {self.stage} @ {self.timestamp}>"
