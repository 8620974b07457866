"""Shipment request and response schemas."""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from wastetrack.core.lifecycle import ShipmentStatus, auto_approval_deadline
from wastetrack.db.models import Shipment


class LocationIn(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    captured_at: Optional[datetime] = None


class ShipmentCreate(BaseModel):
    generator_company_id: UUID
    transporter_company_id: UUID
    recycler_company_id: UUID
    waste_type_id: UUID
    quantity: Decimal = Field(..., gt=0)
    unit: str = Field(..., min_length=1, max_length=20)
    driver_id: Optional[UUID] = None
    description: Optional[str] = None
    notes: Optional[str] = None


class ShipmentResponse(BaseModel):
    id: UUID
    shipment_number: str
    generator_company_id: UUID
    transporter_company_id: UUID
    recycler_company_id: UUID
    driver_id: Optional[UUID]
    waste_type_id: UUID
    quantity: Decimal
    unit: str
    description: Optional[str]
    status: str
    stage_entered_at: datetime
    departure_time: Optional[datetime]
    arrival_time: Optional[datetime]
    sorting_start_time: Optional[datetime]
    sorting_end_time: Optional[datetime]
    recycling_start_time: Optional[datetime]
    recycling_end_time: Optional[datetime]
    completed_at: Optional[datetime]
    current_latitude: Optional[float]
    current_longitude: Optional[float]
    location_captured_at: Optional[datetime]
    disposal_report: Optional[str]
    recycling_report: Optional[str]
    final_report: Optional[str]
    created_at: datetime
    updated_at: datetime
    auto_approval_deadline: Optional[datetime] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_shipment(
        cls,
        shipment: Shipment,
        thresholds: Dict[ShipmentStatus, timedelta],
    ) -> "ShipmentResponse":
        response = cls.model_validate(shipment)
        response.auto_approval_deadline = auto_approval_deadline(shipment, thresholds)
        return response


class StageResponse(BaseModel):
    id: int
    stage: str
    from_status: Optional[str]
    to_status: str
    trigger: str
    timestamp: datetime
    user_id: UUID
    notes: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]

    class Config:
        from_attributes = True


class TransitionRequest(BaseModel):
    status: ShipmentStatus
    notes: Optional[str] = None
    location: Optional[LocationIn] = None
    timestamp: Optional[datetime] = None


class TransitionResponse(BaseModel):
    changed: bool
    message: str
    from_status: str
    to_status: str
    shipment: ShipmentResponse


class ReportIn(BaseModel):
    content: str = Field(..., min_length=1)


class AutoApprovalResponse(BaseModel):
    success: bool = True
    advanced: int
    failed: int
    skipped: int
    partial: bool
    timestamp: datetime
    message: str
