"""Shipment state machine.

Pure decision logic: given the current projection of a shipment and a
requested target status, decide whether the request advances the shipment,
is an idempotent repeat, or is illegal. Persistence lives in the ledger.
"""

from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional
from uuid import UUID

from .errors import InvalidTransitionError, TerminalStateError
from .states import (
    STAGE_TIMESTAMP_FIELDS,
    ShipmentStatus,
    TransitionRule,
    get_transition_rule,
    is_terminal,
    status_index,
)


class TransitionPlan(NamedTuple):
    """Outcome of validating a transition request."""

    from_status: ShipmentStatus
    to_status: ShipmentStatus
    rule: Optional[TransitionRule]

    @property
    def is_noop(self) -> bool:
        return self.rule is None


class ShipmentStateMachine:
    """
    State machine for a single shipment.

    Enforces:
    - only the immediate successor may be entered
    - re-requesting the current status is a no-op
    - nothing leaves COMPLETED
    - stage timestamps never go backwards
    """

    def __init__(
        self,
        shipment_id: UUID,
        current_status: ShipmentStatus,
        stage_entered_at: Optional[datetime] = None,
    ):
        self.shipment_id = shipment_id
        self._status = current_status
        self.stage_entered_at = stage_entered_at

    @property
    def status(self) -> ShipmentStatus:
        return self._status

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self._status)

    def can_advance_to(self, target: ShipmentStatus) -> bool:
        """Check whether ``target`` is the legal next status."""
        rule = get_transition_rule(self._status)
        return rule is not None and rule.to_status == target

    def plan(
        self,
        target: ShipmentStatus,
        timestamp: Optional[datetime] = None,
    ) -> TransitionPlan:
        """
        Validate a transition request.

        Args:
            target: Requested status
            timestamp: Instant the transition is recorded at

        Returns:
            A plan whose ``rule`` is None for an idempotent repeat

        Raises:
            TerminalStateError: If the shipment is completed and target differs
            InvalidTransitionError: If target skips ahead or goes backwards,
                or timestamp precedes the current stage
        """
        if target == self._status:
            return TransitionPlan(self._status, target, None)

        if self.is_terminal:
            raise TerminalStateError(self.shipment_id, target)

        if status_index(target) < status_index(self._status):
            raise InvalidTransitionError(
                f"Shipment {self.shipment_id} has already passed {target.value} "
                f"(currently {self._status.value})",
                self._status,
                target,
            )

        rule = get_transition_rule(self._status)
        if rule is None or rule.to_status != target:
            expected = rule.to_status.value if rule else "none"
            raise InvalidTransitionError(
                f"Cannot move shipment {self.shipment_id} from {self._status.value} "
                f"to {target.value}; next stage is {expected}",
                self._status,
                target,
            )

        if timestamp is not None and self.stage_entered_at is not None:
            if timestamp < self.stage_entered_at:
                raise InvalidTransitionError(
                    f"Timestamp {timestamp.isoformat()} precedes the current stage "
                    f"({self.stage_entered_at.isoformat()})",
                    self._status,
                    target,
                )

        return TransitionPlan(self._status, target, rule)

    def apply(self, plan: TransitionPlan, timestamp: datetime) -> Dict[str, Any]:
        """
        Advance the in-memory state and return the projection changes.

        The returned mapping holds the shipment columns to update.
        """
        if plan.is_noop:
            return {}
        changes: Dict[str, Any] = {field: timestamp for field in plan.rule.timestamp_fields}
        changes["status"] = plan.to_status.value
        changes["stage_entered_at"] = timestamp
        self._status = plan.to_status
        self.stage_entered_at = timestamp
        return changes


def stage_timestamps_are_ordered(values: Dict[str, Optional[datetime]]) -> bool:
    """Check milestone timestamps are non-decreasing wherever set."""
    last: Optional[datetime] = None
    for field in STAGE_TIMESTAMP_FIELDS:
        value = values.get(field)
        if value is None:
            continue
        if last is not None and value < last:
            return False
        last = value
    return True
