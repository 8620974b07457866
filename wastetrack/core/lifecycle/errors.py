"""Lifecycle and authorization error taxonomy.

Every error carries a stable ``code`` for API clients and a message meant
for the person who initiated the action.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from .states import ShipmentStatus


class LifecycleError(Exception):
    """Base class for shipment lifecycle failures."""

    code = "lifecycle_error"


class ShipmentNotFoundError(LifecycleError):
    """Referenced shipment does not exist."""

    code = "shipment_not_found"

    def __init__(self, shipment_id: UUID):
        super().__init__(f"Shipment {shipment_id} not found")
        self.shipment_id = shipment_id


class InvalidTransitionError(LifecycleError):
    """Target status is not the immediate successor of the current status."""

    code = "invalid_transition"

    def __init__(
        self,
        message: str,
        current_status: ShipmentStatus,
        target_status: Optional[ShipmentStatus] = None,
    ):
        super().__init__(message)
        self.current_status = current_status
        self.target_status = target_status


class TerminalStateError(InvalidTransitionError):
    """Shipment is already completed."""

    code = "terminal_state"

    def __init__(self, shipment_id: UUID, target_status: Optional[ShipmentStatus] = None):
        super().__init__(
            f"Shipment {shipment_id} is already completed; no further changes are possible",
            ShipmentStatus.COMPLETED,
            target_status,
        )
        self.shipment_id = shipment_id


class WriteOnceViolationError(LifecycleError):
    """A write-once field already holds a value."""

    code = "already_recorded"

    def __init__(self, shipment_id: UUID, field: str):
        super().__init__(f"{field} is already recorded for shipment {shipment_id}")
        self.shipment_id = shipment_id
        self.field = field


class StageRequirementError(LifecycleError):
    """Operation needs the shipment to have reached a later stage."""

    code = "stage_requirement"

    def __init__(self, message: str, current_status: ShipmentStatus, required_status: ShipmentStatus):
        super().__init__(message)
        self.current_status = current_status
        self.required_status = required_status


class InvalidInputError(LifecycleError, ValueError):
    """Caller-supplied value is outside what the lifecycle accepts."""

    code = "invalid_value"


class FutureTimestampError(InvalidInputError):
    """Supplied instant lies beyond the current time plus the allowed clock skew."""

    code = "future_timestamp"

    def __init__(self, field: str, value: datetime, latest: datetime):
        super().__init__(
            f"{field} {value.isoformat()} is in the future; "
            f"latest accepted instant is {latest.isoformat()}"
        )
        self.field = field
        self.value = value
        self.latest = latest


class StorageError(LifecycleError):
    """Ledger read or write failed."""

    code = "storage_failure"


class AuthorizationError(Exception):
    """Base class for trigger authorization failures."""

    code = "authorization_error"


class UnauthorizedError(AuthorizationError):
    """Missing or invalid credential."""

    code = "unauthorized"


class ForbiddenError(AuthorizationError):
    """Authenticated caller lacks the administrative role."""

    code = "forbidden"
