"""API schemas for WasteTrack."""

from wastetrack.api.schemas.common import ErrorResponse
from wastetrack.api.schemas.shipment import (
    AutoApprovalResponse,
    LocationIn,
    ReportIn,
    ShipmentCreate,
    ShipmentResponse,
    StageResponse,
    TransitionRequest,
    TransitionResponse,
)

__all__ = [
    "ErrorResponse",
    "AutoApprovalResponse",
    "LocationIn",
    "ReportIn",
    "ShipmentCreate",
    "ShipmentResponse",
    "StageResponse",
    "TransitionRequest",
    "TransitionResponse",
]
