"""Shipment lifecycle API endpoints."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status

from wastetrack.api.deps import get_current_user_id, get_lifecycle_service
from wastetrack.api.schemas import (
    ErrorResponse,
    LocationIn,
    ReportIn,
    ShipmentCreate,
    ShipmentResponse,
    StageResponse,
    TransitionRequest,
    TransitionResponse,
)
from wastetrack.core.config import Settings, get_settings
from wastetrack.core.lifecycle import Location, ReportKind, ShipmentLifecycleService

router = APIRouter(
    prefix="/shipments",
    tags=["shipments"],
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)


@router.post("", response_model=ShipmentResponse, status_code=status.HTTP_201_CREATED)
def create_shipment(
    data: ShipmentCreate,
    service: ShipmentLifecycleService = Depends(get_lifecycle_service),
    current_user_id: UUID = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
):
    """Register a new shipment in the ``created`` stage."""
    shipment = service.create_shipment(actor_id=current_user_id, **data.model_dump())
    return ShipmentResponse.from_shipment(shipment, settings.dwell_thresholds())


@router.get("/{shipment_id}", response_model=ShipmentResponse)
def get_shipment(
    shipment_id: UUID,
    service: ShipmentLifecycleService = Depends(get_lifecycle_service),
    current_user_id: UUID = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
):
    shipment = service.get_shipment(shipment_id)
    return ShipmentResponse.from_shipment(shipment, settings.dwell_thresholds())


@router.get("/{shipment_id}/stages", response_model=List[StageResponse])
def get_shipment_stages(
    shipment_id: UUID,
    service: ShipmentLifecycleService = Depends(get_lifecycle_service),
    current_user_id: UUID = Depends(get_current_user_id),
):
    """Stage history, oldest first."""
    return [StageResponse.model_validate(s) for s in service.get_history(shipment_id)]


@router.post("/{shipment_id}/transitions", response_model=TransitionResponse)
def transition_shipment(
    shipment_id: UUID,
    data: TransitionRequest,
    service: ShipmentLifecycleService = Depends(get_lifecycle_service),
    current_user_id: UUID = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
):
    """
    Move a shipment to its next stage.

    Re-requesting the current stage returns 200 with ``changed`` false.
    """
    location = None
    if data.location is not None:
        location = Location(data.location.latitude, data.location.longitude)

    result = service.transition(
        shipment_id,
        data.status,
        actor_id=current_user_id,
        notes=data.notes,
        location=location,
        timestamp=data.timestamp,
    )
    return TransitionResponse(
        changed=result.changed,
        message=result.message,
        from_status=result.from_status.value,
        to_status=result.to_status.value,
        shipment=ShipmentResponse.from_shipment(result.shipment, settings.dwell_thresholds()),
    )


@router.put("/{shipment_id}/location", response_model=ShipmentResponse)
def update_shipment_location(
    shipment_id: UUID,
    data: LocationIn,
    service: ShipmentLifecycleService = Depends(get_lifecycle_service),
    current_user_id: UUID = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
):
    shipment = service.update_location(
        shipment_id,
        data.latitude,
        data.longitude,
        captured_at=data.captured_at,
    )
    return ShipmentResponse.from_shipment(shipment, settings.dwell_thresholds())


@router.put("/{shipment_id}/reports/{kind}", response_model=ShipmentResponse)
def attach_shipment_report(
    shipment_id: UUID,
    kind: ReportKind,
    data: ReportIn,
    service: ShipmentLifecycleService = Depends(get_lifecycle_service),
    current_user_id: UUID = Depends(get_current_user_id),
    settings: Settings = Depends(get_settings),
):
    """Attach a write-once disposal, recycling or final report."""
    shipment = service.attach_report(shipment_id, kind, data.content)
    return ShipmentResponse.from_shipment(shipment, settings.dwell_thresholds())
