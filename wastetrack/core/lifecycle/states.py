"""Shipment lifecycle statuses, stage milestones and transition rules.

Lifecycle:

    ┌─────────┐   ┌────────────┐   ┌───────────┐   ┌─────────┐   ┌───────────┐   ┌───────────┐
    │ CREATED │──►│ IN_TRANSIT │──►│ DELIVERED │──►│ SORTING │──►│ RECYCLING │──►│ COMPLETED │
    └─────────┘   └────────────┘   └───────────┘   └─────────┘   └───────────┘   └───────────┘
                   departure        arrival         sorting_start  sorting_end     recycling_end
                                                                   recycling_start completed

Each arrow is one transition. A transition appends exactly one stage record
(the milestone the shipment enters) and stamps the milestone timestamp
columns listed under the arrow on the shipment row.
"""

from enum import Enum
from typing import Dict, NamedTuple, Optional, Tuple


class ShipmentStatus(str, Enum):
    """Position of a shipment in the custody chain."""

    CREATED = "created"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    SORTING = "sorting"
    RECYCLING = "recycling"
    COMPLETED = "completed"


class StageName(str, Enum):
    """Milestones recorded in the stage ledger."""

    CREATED = "created"
    DEPARTURE = "departure"
    ARRIVAL = "arrival"
    SORTING_START = "sorting_start"
    RECYCLING_START = "recycling_start"
    COMPLETED = "completed"


class TriggerKind(str, Enum):
    """Who caused a transition."""

    HUMAN = "human"
    SYSTEM = "system"


class ReportKind(str, Enum):
    """Write-once report fields attached at specific stages."""

    DISPOSAL = "disposal"
    RECYCLING = "recycling"
    FINAL = "final"


class TransitionRule(NamedTuple):
    """Defines the single legal step out of a status."""

    from_status: ShipmentStatus
    to_status: ShipmentStatus
    stage: StageName
    # Shipment columns stamped with the transition instant
    timestamp_fields: Tuple[str, ...]


CANONICAL_ORDER: Tuple[ShipmentStatus, ...] = (
    ShipmentStatus.CREATED,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.DELIVERED,
    ShipmentStatus.SORTING,
    ShipmentStatus.RECYCLING,
    ShipmentStatus.COMPLETED,
)

TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(ShipmentStatus.CREATED, ShipmentStatus.IN_TRANSIT,
                   StageName.DEPARTURE, ("departure_time",)),
    TransitionRule(ShipmentStatus.IN_TRANSIT, ShipmentStatus.DELIVERED,
                   StageName.ARRIVAL, ("arrival_time",)),
    TransitionRule(ShipmentStatus.DELIVERED, ShipmentStatus.SORTING,
                   StageName.SORTING_START, ("sorting_start_time",)),
    TransitionRule(ShipmentStatus.SORTING, ShipmentStatus.RECYCLING,
                   StageName.RECYCLING_START, ("sorting_end_time", "recycling_start_time")),
    TransitionRule(ShipmentStatus.RECYCLING, ShipmentStatus.COMPLETED,
                   StageName.COMPLETED, ("recycling_end_time", "completed_at")),
]

# Build lookup table for efficient access
RULES_BY_SOURCE: Dict[ShipmentStatus, TransitionRule] = {
    rule.from_status: rule for rule in TRANSITION_RULES
}

TERMINAL_STATUSES = frozenset({ShipmentStatus.COMPLETED})

# Milestone columns in canonical order; set values must be non-decreasing
STAGE_TIMESTAMP_FIELDS: Tuple[str, ...] = (
    "departure_time",
    "arrival_time",
    "sorting_start_time",
    "sorting_end_time",
    "recycling_start_time",
    "recycling_end_time",
    "completed_at",
)

# Earliest status at which each report may be attached
REPORT_MIN_STATUS: Dict[ReportKind, ShipmentStatus] = {
    ReportKind.DISPOSAL: ShipmentStatus.DELIVERED,
    ReportKind.RECYCLING: ShipmentStatus.RECYCLING,
    ReportKind.FINAL: ShipmentStatus.COMPLETED,
}

REPORT_FIELDS: Dict[ReportKind, str] = {
    ReportKind.DISPOSAL: "disposal_report",
    ReportKind.RECYCLING: "recycling_report",
    ReportKind.FINAL: "final_report",
}


def status_index(status: ShipmentStatus) -> int:
    """Position of a status in the canonical order."""
    return CANONICAL_ORDER.index(status)


def next_status(status: ShipmentStatus) -> Optional[ShipmentStatus]:
    """Immediate successor of a status, or None for terminal statuses."""
    rule = RULES_BY_SOURCE.get(status)
    return rule.to_status if rule else None


def get_transition_rule(from_status: ShipmentStatus) -> Optional[TransitionRule]:
    """Get the rule for leaving a status."""
    return RULES_BY_SOURCE.get(from_status)


def is_terminal(status: ShipmentStatus) -> bool:
    return status in TERMINAL_STATUSES