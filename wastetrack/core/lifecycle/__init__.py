"""Shipment lifecycle module for WasteTrack.

Implements the custody-chain state machine, the stage ledger and the
auto-approval of shipments that overstay a stage.
"""

from .states import (
    CANONICAL_ORDER,
    ReportKind,
    ShipmentStatus,
    StageName,
    TriggerKind,
    next_status,
)
from .errors import (
    FutureTimestampError,
    InvalidInputError,
    InvalidTransitionError,
    LifecycleError,
    ShipmentNotFoundError,
    StageRequirementError,
    StorageError,
    TerminalStateError,
    WriteOnceViolationError,
)
from .events import AuditSink, TransitionEvent
from .machine import ShipmentStateMachine
from .ledger import DwellCandidate, Location, StageLedger
from .service import ShipmentLifecycleService, TransitionResult, auto_approval_deadline
from .auto_approval import AutoApprovalEngine, AutoApprovalResult

__all__ = [
    "CANONICAL_ORDER",
    "ReportKind",
    "ShipmentStatus",
    "StageName",
    "TriggerKind",
    "next_status",
    "FutureTimestampError",
    "InvalidInputError",
    "InvalidTransitionError",
    "LifecycleError",
    "ShipmentNotFoundError",
    "StageRequirementError",
    "StorageError",
    "TerminalStateError",
    "WriteOnceViolationError",
    "AuditSink",
    "TransitionEvent",
    "ShipmentStateMachine",
    "DwellCandidate",
    "Location",
    "StageLedger",
    "ShipmentLifecycleService",
    "TransitionResult",
    "auto_approval_deadline",
    "AutoApprovalEngine",
    "AutoApprovalResult",
]
