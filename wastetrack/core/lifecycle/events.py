"""Transition events handed to audit sinks after commit."""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Protocol, runtime_checkable
from uuid import UUID

from .states import ShipmentStatus, StageName, TriggerKind


@dataclass(frozen=True)
class TransitionEvent:
    shipment_id: UUID
    shipment_number: str
    from_status: ShipmentStatus
    to_status: ShipmentStatus
    stage: StageName
    actor_id: UUID
    timestamp: datetime
    trigger: TriggerKind
    notes: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation."""
        data = asdict(self)
        data["shipment_id"] = str(self.shipment_id)
        data["actor_id"] = str(self.actor_id)
        data["from_status"] = self.from_status.value
        data["to_status"] = self.to_status.value
        data["stage"] = self.stage.value
        data["trigger"] = self.trigger.value
        data["timestamp"] = self.timestamp.isoformat()
        return data


@runtime_checkable
class AuditSink(Protocol):
    """Receives one event per committed transition."""

    def emit(self, event: TransitionEvent) -> None: ...
